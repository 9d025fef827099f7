"""
GitLab API request client with per-client TLS trust policy.
"""

from typing import Optional

from .api_client import (
    API_NAMESPACE,
    PRIVATE_TOKEN_HEADER,
    GitLabApiClient,
    MalformedUrlError,
)
from .config import ClientSettings, ConfigurationError, GitLabApiError, TrustPolicy
from .logger_config import setup_logger

__version__ = "1.0.0"


def create_client(settings: ClientSettings) -> GitLabApiClient:
    """Build a client from ClientSettings."""
    return GitLabApiClient(
        settings.host_url,
        settings.private_token,
        trust_policy=settings.trust_policy(),
        timeout=settings.timeout,
    )


def create_client_from_env(dotenv_path: Optional[str] = None) -> GitLabApiClient:
    """Build a client from GITLAB_* environment variables (and .env)."""
    return create_client(ClientSettings.from_env(dotenv_path))


__all__ = [
    "API_NAMESPACE",
    "PRIVATE_TOKEN_HEADER",
    "GitLabApiClient",
    "MalformedUrlError",
    "ClientSettings",
    "ConfigurationError",
    "GitLabApiError",
    "TrustPolicy",
    "create_client",
    "create_client_from_env",
    "setup_logger",
]
