"""Test configuration: every fixture module under tests/fixtures is registered here."""

from tests.fixtures import *  # noqa: F401,F403
