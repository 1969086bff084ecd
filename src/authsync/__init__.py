"""Session lifecycle and identity linking for a multi-tenant SaaS backend.

Validates provider-issued access tokens, keeps sessions alive through cookie
transport and refresh, and reconciles provider users with local accounts.
"""

__version__ = "0.1.0"
