"""
Container registry client for imagebump.

Answers one question over the Docker Registry HTTP API v2: does
`repository:tag` exist? Used to refuse pointing a manifest at an image
that was never pushed.

- Resolves the registry host from the repository name (Docker Hub when
  the first path component is not a host)
- Follows the Bearer token challenge most registries answer with
- Retries transport failures with exponential backoff
"""

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import logging

import requests

from ..exit_codes import AuthError, NetworkError, NotFoundError

logger = logging.getLogger(__name__)

DOCKER_HUB_HOST = "registry-1.docker.io"

MANIFEST_ACCEPT = ", ".join([
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v2+json",
])

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class RegistryTarget:
    """Where a repository lives: registry base URL and repository name."""
    base_url: str
    name: str


def split_repository(repository: str, base_url: Optional[str] = None) -> RegistryTarget:
    """
    Split `ghcr.io/acme/app` into registry and name.

    A first component containing `.` or `:`, or `localhost`, is a
    registry host; anything else lives on Docker Hub, where single-name
    images are under `library/`.
    """
    first, _, rest = repository.partition('/')
    if rest and ('.' in first or ':' in first or first == 'localhost'):
        host, name = first, rest
    else:
        host, name = DOCKER_HUB_HOST, repository
        if '/' not in name:
            name = f"library/{name}"
    if host == "docker.io":
        host = DOCKER_HUB_HOST

    if base_url:
        return RegistryTarget(base_url=base_url.rstrip('/'), name=name)
    scheme = "http" if host.startswith(("localhost", "127.0.0.1")) else "https"
    return RegistryTarget(base_url=f"{scheme}://{host}", name=name)


def parse_challenge(header: str) -> Tuple[str, Dict[str, str]]:
    """Parse a WWW-Authenticate header into (scheme, params)."""
    scheme, _, params = header.partition(' ')
    return scheme.lower(), dict(_CHALLENGE_PARAM.findall(params))


class RegistryClient:
    """
    Registry API v2 access.

    Example:
        client = RegistryClient()
        if client.tag_exists("ghcr.io/acme/app", "v2"):
            print("ready to deploy")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = 10,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize RegistryClient.

        Args:
            base_url: Registry URL (default: derived from each repository)
            username: Registry user for the token exchange
            token: Registry password/token for the token exchange
            timeout: Request timeout in seconds
            max_retries: Maximum attempts for failed requests
            base_delay: Base delay for exponential backoff
            max_delay: Maximum delay between retries
        """
        self.base_url = base_url or None
        self.username = username or None
        self.token = token or None
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.session = session or requests.Session()
        self._sleep = sleep

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request, retrying transport failures."""
        for attempt in range(self.max_retries):
            try:
                return self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                logger.warning(f"Registry request failed: {e}")
                if attempt < self.max_retries - 1:
                    delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                    self._sleep(delay)
                    continue
                raise NetworkError(f"Registry unreachable: {url}", cause=e) from e

    def _bearer_token(self, challenge: str) -> Optional[str]:
        scheme, params = parse_challenge(challenge)
        if scheme != "bearer" or "realm" not in params:
            return None
        query = {k: v for k, v in params.items() if k in ("service", "scope")}
        auth = (self.username, self.token) if self.username and self.token else None
        response = self._request("GET", params["realm"], params=query, auth=auth)
        if response.status_code in (401, 403):
            raise AuthError(f"Registry token request rejected ({response.status_code})")
        if response.status_code != 200:
            return None
        data = response.json()
        return data.get("token") or data.get("access_token")

    def tag_exists(self, repository: str, tag: str) -> bool:
        """
        Check whether repository:tag has a manifest in its registry.

        Raises:
            AuthError: registry rejected our credentials
            NetworkError: registry unreachable
        """
        target = split_repository(repository, self.base_url)
        url = f"{target.base_url}/v2/{target.name}/manifests/{tag}"
        headers = {"Accept": MANIFEST_ACCEPT}

        response = self._request("HEAD", url, headers=headers)
        if response.status_code == 401:
            challenge = response.headers.get("WWW-Authenticate", "")
            scheme, _ = parse_challenge(challenge)
            if scheme == "basic" and self.username and self.token:
                response = self._request("HEAD", url, headers=headers, auth=(self.username, self.token))
            else:
                bearer = self._bearer_token(challenge)
                if bearer:
                    headers["Authorization"] = f"Bearer {bearer}"
                    response = self._request("HEAD", url, headers=headers)

        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        if response.status_code in (401, 403):
            raise AuthError(f"Registry rejected access to {repository} ({response.status_code})", repository=repository, tag=tag)
        raise NetworkError(f"Registry returned {response.status_code} for {url}", repository=repository, tag=tag)

    def verify(self, repository: str, tag: str) -> None:
        """
        Raise NotFoundError unless repository:tag exists.
        """
        if not self.tag_exists(repository, tag):
            raise NotFoundError(f"Tag {tag} not found for {repository} in registry", repository=repository, tag=tag)
        logger.info(f"Registry has {repository}:{tag}")
