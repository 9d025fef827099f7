"""
HTTP client for communicating with a GitLab REST API endpoint.
Sends the private token header on every request and supports an insecure
mode for servers using self-signed certificates (scoped to one client).
"""

import logging
import threading
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import requests
from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from .config import ConfigurationError, GitLabApiError, TrustPolicy


logger = logging.getLogger(__name__)

PRIVATE_TOKEN_HEADER = "PRIVATE-TOKEN"
API_NAMESPACE = "/api/v3"
JSON_MEDIA_TYPE = "application/json"

ParamValue = Union[str, int, Sequence[Any]]
Params = Union[Mapping[str, ParamValue], Iterable[Tuple[str, Any]]]


class MalformedUrlError(GitLabApiError, ValueError):
    """Raised when a request URL cannot be built from the host and path."""


def to_param_pairs(params: Optional[Params]) -> Optional[List[Tuple[str, str]]]:
    """
    Flatten an ordered multi-map into a list of (key, value) pairs.

    Accepts a mapping of key -> value or key -> list of values, or an
    iterable of (key, value) pairs. Key order and per-key value order
    are kept. Values are converted to strings; None values are left out.
    """
    if params is None:
        return None

    items = params.items() if isinstance(params, Mapping) else params

    pairs: List[Tuple[str, str]] = []
    for key, value in items:
        if isinstance(value, (list, tuple)):
            pairs.extend((key, str(v)) for v in value if v is not None)
        elif value is not None:
            pairs.append((key, str(value)))
    return pairs


class GitLabApiClient:
    """
    Low-level client for a GitLab API server.

    - Every request carries the PRIVATE-TOKEN and Accept: application/json headers
    - GET/DELETE send parameters as a query string
    - POST/PUT send parameters as a URL-encoded form body
    - Responses are returned untouched, whatever their status code
    - No retries: transport errors from requests propagate to the caller

    The underlying requests.Session is created on first use and reused.

    Certificate verification is controlled by the client's TrustPolicy.
    Disabling it affects this client only, never other connections made
    by the process.
    """

    def __init__(
        self,
        host_url: str,
        private_token: str,
        trust_policy: Optional[TrustPolicy] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the client.

        Args:
            host_url: URL of the GitLab server (e.g., "https://gitlab.example.com")
            private_token: Private token to authenticate with
            trust_policy: Certificate verification policy (verifies by default)
            timeout: Optional timeout in seconds, handed to requests as is
        """
        # Remove the trailing "/" from the host URL if present
        if host_url.endswith("/"):
            host_url = host_url[:-1]
        self.api_url = host_url + API_NAMESPACE
        self.private_token = private_token
        self.timeout = timeout

        trust_policy = trust_policy or TrustPolicy.default()
        trust_policy.validate()
        self._trust_policy = trust_policy

        self._session: Optional[requests.Session] = None
        self._session_lock = threading.Lock()

        if trust_policy.ignore_certificate_errors:
            self._warn_insecure()

        logger.info(f"GitLab API client initialized: {self.api_url}")

    def __enter__(self) -> "GitLabApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def trust_policy(self) -> TrustPolicy:
        return self._trust_policy

    @property
    def session(self) -> requests.Session:
        """The shared requests.Session, created on first access."""
        session = self._session
        if session is not None:
            return session

        with self._session_lock:
            if self._session is None:
                session = requests.Session()
                session.verify = self._trust_policy.to_requests_verify()
                session.headers.update({
                    PRIVATE_TOKEN_HEADER: self.private_token,
                    "Accept": JSON_MEDIA_TYPE,
                })
                self._session = session
                logger.info("HTTP session created")
            return self._session

    def get_ignore_certificate_errors(self) -> bool:
        """Return True if this client is set up to ignore certificate errors."""
        return self._trust_policy.ignore_certificate_errors

    def set_ignore_certificate_errors(self, ignore_certificate_errors: bool) -> None:
        """
        Turn certificate verification off (True) or back on (False) for this client.

        Turning it back on restores the policy that was in force before it was
        turned off, including any CA bundle.

        Raises:
            ConfigurationError: if the new policy cannot be installed. The
                previous policy is left in place.
        """
        if self.get_ignore_certificate_errors() == ignore_certificate_errors:
            return

        previous = self._trust_policy
        if ignore_certificate_errors:
            new_policy = previous.without_verification()
        else:
            new_policy = previous.with_verification()

        try:
            new_policy.validate()
            verify = new_policy.to_requests_verify()
        except ConfigurationError:
            logger.error("Unable to change certificate verification, keeping previous policy")
            raise

        with self._session_lock:
            self._trust_policy = new_policy
            if self._session is not None:
                self._session.verify = verify
                # Pooled connections keep the TLS state they were opened with
                for adapter in self._session.adapters.values():
                    adapter.close()
                logger.debug("Pooled connections dropped after trust policy change")

        if ignore_certificate_errors:
            self._warn_insecure()
        else:
            logger.info("SSL certificate verification enabled")

    def get_api_url(self, *path_args: Any) -> str:
        """
        Build a REST URL from the API base URL and the given path arguments.

        Args:
            *path_args: Path segments, converted with str()

        Returns:
            The full URL, e.g. https://host/api/v3/projects/42/issues

        Raises:
            MalformedUrlError: if the resulting URL is not valid
        """
        url = self.api_url
        for path_arg in path_args:
            url += "/" + str(path_arg)

        _check_url(url)
        return url

    def get(self, query_params: Optional[Params] = None, *path_args: Any) -> requests.Response:
        """
        Perform an HTTP GET against the URL built from path_args.

        Args:
            query_params: Query string parameters (ordered multi-map)
            *path_args: Path segments under the API namespace

        Returns:
            The raw requests.Response
        """
        return self.get_url(query_params, self.get_api_url(*path_args))

    def get_url(self, query_params: Optional[Params], url: str) -> requests.Response:
        """Perform an HTTP GET against an already built URL."""
        return self._invoke("GET", url, params=query_params)

    def post(self, form_data: Optional[Params] = None, *path_args: Any) -> requests.Response:
        """
        Perform an HTTP POST, sending form_data as a URL-encoded body.

        Args:
            form_data: Form fields (ordered multi-map)
            *path_args: Path segments under the API namespace

        Returns:
            The raw requests.Response
        """
        return self.post_url(form_data, self.get_api_url(*path_args))

    def post_url(self, form_data: Optional[Params], url: str) -> requests.Response:
        """Perform an HTTP POST against an already built URL."""
        return self._invoke("POST", url, data=form_data)

    def put(self, query_params: Optional[Params] = None, *path_args: Any) -> requests.Response:
        """
        Perform an HTTP PUT, sending the parameters as a URL-encoded body.

        Args:
            query_params: Parameters to send (ordered multi-map)
            *path_args: Path segments under the API namespace

        Returns:
            The raw requests.Response
        """
        return self.put_url(query_params, self.get_api_url(*path_args))

    def put_url(self, query_params: Optional[Params], url: str) -> requests.Response:
        """Perform an HTTP PUT against an already built URL."""
        return self._invoke("PUT", url, data=query_params)

    def delete(self, query_params: Optional[Params] = None, *path_args: Any) -> requests.Response:
        """
        Perform an HTTP DELETE against the URL built from path_args.

        Args:
            query_params: Query string parameters (ordered multi-map)
            *path_args: Path segments under the API namespace

        Returns:
            The raw requests.Response
        """
        return self.delete_url(query_params, self.get_api_url(*path_args))

    def delete_url(self, query_params: Optional[Params], url: str) -> requests.Response:
        """Perform an HTTP DELETE against an already built URL."""
        return self._invoke("DELETE", url, params=query_params)

    def close(self) -> None:
        """
        Close the session. A later request opens a new one.
        """
        with self._session_lock:
            session, self._session = self._session, None
        if session is not None:
            session.close()
            logger.info("HTTP session closed")

    def _invoke(
        self,
        method: str,
        url: str,
        params: Optional[Params] = None,
        data: Optional[Params] = None,
    ) -> requests.Response:
        session = self.session
        logger.debug(f"{method} {url}")

        # verify is passed explicitly so REQUESTS_CA_BUNDLE cannot override verify=False
        response = session.request(
            method,
            url,
            params=to_param_pairs(params),
            data=to_param_pairs(data),
            timeout=self.timeout,
            verify=self._trust_policy.to_requests_verify(),
            allow_redirects=True,
        )

        logger.debug(f"Response: {response.status_code}")
        return response

    def _warn_insecure(self) -> None:
        logger.warning(
            f"SSL VERIFICATION DISABLED for {self.api_url} - "
            "this should ONLY be used with trusted servers using self-signed certificates!"
        )


def _check_url(url: str) -> None:
    try:
        parsed = parse_url(url)
    except LocationParseError as e:
        raise MalformedUrlError(f"Malformed URL: {url}") from e

    if parsed.scheme not in ("http", "https"):
        raise MalformedUrlError(f"Malformed URL (unsupported scheme): {url}")
    if not parsed.host:
        raise MalformedUrlError(f"Malformed URL (no host): {url}")
