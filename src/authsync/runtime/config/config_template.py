"""Configuration template substitution utilities."""

import os
import re
from collections.abc import Mapping
from pathlib import Path

import yaml
from loguru import logger
from pydantic import ValidationError

from src.authsync.runtime.config.config_data import ConfigData

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(text: str, environ: Mapping[str, str] | None = None) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable (raises error if missing)
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?error_message} - required with custom error message
    """
    env = os.environ if environ is None else environ

    def replacer(match: re.Match[str]) -> str:
        expression = match.group(1)

        if ":-" in expression:
            name, default = expression.split(":-", 1)
            return env.get(name, default)

        if ":?" in expression:
            name, message = expression.split(":?", 1)
            if name not in env:
                raise ValueError(f"Required environment variable {name}: {message}")
            return env[name]

        if expression not in env:
            raise ValueError(f"Required environment variable {expression} not set")
        return env[expression]

    # whole-line comments are not substituted
    return "".join(
        line if line.lstrip().startswith("#") else _PLACEHOLDER.sub(replacer, line)
        for line in text.splitlines(keepends=True)
    )


def environment_overrides(env_mode: str, environ: Mapping[str, str]) -> dict[str, str]:
    """Return the variables prefixed with ``<ENV_MODE>_`` with the prefix removed.

    ``PRODUCTION_DATABASE_URL`` becomes ``DATABASE_URL`` when running in production.
    """
    prefix = f"{env_mode.upper()}_"
    return {
        name[len(prefix):]: value
        for name, value in environ.items()
        if name.startswith(prefix) and len(name) > len(prefix)
    }


def load_templated_yaml(file_path: Path, env_mode: str | None = None) -> ConfigData:
    """
    Load a YAML file with environment variable substitution.

    Args:
        file_path: Path to the YAML file
        env_mode: Active environment; defaults to ``APP_ENVIRONMENT``

    Returns:
        Validated configuration

    Raises:
        ValueError: If required environment variables are missing or the file is invalid
        FileNotFoundError: If the YAML file doesn't exist
    """
    content = file_path.read_text()

    env_mode = env_mode or os.getenv("APP_ENVIRONMENT", "development")
    logger.info("Loading configuration for environment: {}", env_mode)

    overrides = environment_overrides(env_mode, os.environ)
    if overrides:
        logger.info(
            "Applying environment-specific overrides: {}", sorted(overrides.keys())
        )
    environ = {**os.environ, **overrides}

    try:
        loaded = yaml.safe_load(substitute_env_vars(content, environ))
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e
    if not loaded:
        raise ValueError(f"Configuration file {file_path} is empty")

    try:
        config = ConfigData(**(loaded.get("config") or {}))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    disabled = [
        name
        for name, option in config.identity_provider.oauth_providers.items()
        if not option.enabled or not (option.provider or option.connection_id)
    ]
    for name in disabled:
        logger.info("Skipping disabled OAuth provider '{}'", name)
        del config.identity_provider.oauth_providers[name]

    return config
