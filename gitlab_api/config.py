"""
Configuration for the GitLab API client.
Holds the per-client TLS trust policy and the connection settings,
which can be loaded from the environment (or a .env file).
"""

from dataclasses import dataclass, replace
from typing import Dict, Optional, Union
import os

from dotenv import load_dotenv


class GitLabApiError(Exception):
    """Base class for errors raised by the GitLab API client."""


class ConfigurationError(GitLabApiError):
    """Raised when the client configuration cannot be applied."""


@dataclass(frozen=True)
class TrustPolicy:
    """
    TLS certificate verification policy for one client.

    Attributes:
        verify: Verify the server certificate and hostname (default True)
        ca_bundle: Optional path to a CA bundle used instead of the system store
    """
    verify: bool = True
    ca_bundle: Optional[str] = None

    @classmethod
    def default(cls) -> 'TrustPolicy':
        return cls()

    @classmethod
    def insecure(cls) -> 'TrustPolicy':
        """Policy accepting any certificate and hostname (TESTING ONLY)."""
        return cls(verify=False)

    @property
    def ignore_certificate_errors(self) -> bool:
        return not self.verify

    def without_verification(self) -> 'TrustPolicy':
        return replace(self, verify=False)

    def with_verification(self) -> 'TrustPolicy':
        return replace(self, verify=True)

    def validate(self) -> None:
        """Check the policy can be installed on a session."""
        if self.verify and self.ca_bundle and not os.path.isfile(self.ca_bundle):
            raise ConfigurationError(f"CA bundle not found: {self.ca_bundle}")

    def to_requests_verify(self) -> Union[bool, str]:
        """Value for requests.Session.verify."""
        if not self.verify:
            return False
        if self.ca_bundle:
            return self.ca_bundle
        return True


def _parse_bool(v: Optional[str], default: bool = False) -> bool:
    if v is None:
        return default
    s = v.strip().lower()
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def _parse_float(v: Optional[str], default: Optional[float]) -> Optional[float]:
    if v is None:
        return default
    s = v.strip().replace(",", ".")
    if s == "":
        return default
    try:
        return float(s)
    except ValueError:
        return default


@dataclass
class ClientSettings:
    """
    Connection settings for a GitLab server.

    Attributes:
        host_url: GitLab server URL (e.g., "https://gitlab.example.com")
        private_token: Private token to authenticate with
        ignore_certificate_errors: Disable certificate verification (TESTING ONLY)
        ca_bundle: Optional CA bundle path
        timeout: Optional request timeout in seconds
    """
    host_url: str
    private_token: str
    ignore_certificate_errors: bool = False
    ca_bundle: Optional[str] = None
    timeout: Optional[float] = None

    def trust_policy(self) -> TrustPolicy:
        return TrustPolicy(
            verify=not self.ignore_certificate_errors,
            ca_bundle=self.ca_bundle,
        )

    def to_dict(self, include_token: bool = False) -> Dict:
        """Convert settings to a dictionary. The token is masked unless include_token is set."""
        return {
            "host_url": self.host_url,
            "private_token": self.private_token if include_token else "***",
            "ignore_certificate_errors": self.ignore_certificate_errors,
            "ca_bundle": self.ca_bundle,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ClientSettings':
        """Create settings from a dictionary."""
        return cls(
            host_url=data["host_url"],
            private_token=data["private_token"],
            ignore_certificate_errors=data.get("ignore_certificate_errors", False),
            ca_bundle=data.get("ca_bundle"),
            timeout=data.get("timeout"),
        )

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'ClientSettings':
        """
        Load settings from environment variables, reading a .env file first.

        Variables:
            GITLAB_URL, GITLAB_PRIVATE_TOKEN (required)
            GITLAB_IGNORE_CERT_ERRORS, GITLAB_CA_BUNDLE, GITLAB_TIMEOUT (optional)

        Raises:
            ConfigurationError: if the URL or token is missing
        """
        load_dotenv(dotenv_path)

        host_url = os.getenv("GITLAB_URL", "").strip()
        private_token = os.getenv("GITLAB_PRIVATE_TOKEN", "").strip()
        if not host_url:
            raise ConfigurationError("GITLAB_URL is not set")
        if not private_token:
            raise ConfigurationError("GITLAB_PRIVATE_TOKEN is not set")

        return cls(
            host_url=host_url,
            private_token=private_token,
            ignore_certificate_errors=_parse_bool(os.getenv("GITLAB_IGNORE_CERT_ERRORS"), False),
            ca_bundle=os.getenv("GITLAB_CA_BUNDLE") or None,
            timeout=_parse_float(os.getenv("GITLAB_TIMEOUT"), None),
        )
