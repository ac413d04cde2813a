"""Digest source backed by the OCI distribution HTTP API.

Issues ``HEAD /v2/<name>/manifests/<tag>`` and reads the
``Docker-Content-Digest`` response header. No image data is downloaded.

Authentication follows the registry token challenge: an unauthenticated
request answered with ``401`` and a ``WWW-Authenticate: Bearer realm=...``
header is retried with a token from that realm (anonymous, or with the
configured username/password). ``Basic`` challenges are answered with the
credentials directly.
"""

import re
from typing import Any, Optional

import requests

from container_attest.exceptions import DigestNotFoundError, RegistryError
from container_attest.http_client import DEFAULT_HTTP_TIMEOUT, create_session, get_default_headers
from container_attest.logging_config import logger

from ..protocol import ImageDigest, split_repository

# Accept both multi-platform indexes and single manifests, OCI and Docker flavours
MANIFEST_MEDIA_TYPES = (
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
)

DIGEST_HEADER = "Docker-Content-Digest"

_CHALLENGE_PARAM_PATTERN = re.compile(r'(\w+)="([^"]*)"')


def parse_auth_challenge(header: str) -> tuple[str, dict[str, str]]:
    """
    Parse a WWW-Authenticate header.

    Args:
        header: Raw header value, e.g. 'Bearer realm="https://ghcr.io/token",service="ghcr.io"'

    Returns:
        Tuple of (lowercase scheme, parameters)
    """
    scheme, _, params = header.strip().partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM_PATTERN.findall(params))


class RegistryApiDigestSource:
    """Resolve digests with a HEAD request against the registry API."""

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Any = DEFAULT_HTTP_TIMEOUT,
        scheme: str = "https",
    ) -> None:
        self._username = username
        self._password = password
        self._session = session or create_session()
        self._timeout = timeout
        self._scheme = scheme
        self._tokens: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "registry-api"

    def lookup(self, repository: str, tag: str) -> ImageDigest:
        host, path = split_repository(repository)
        url = f"{self._scheme}://{host}/v2/{path}/manifests/{tag}"

        response = self._head(url, host, path)

        if response.status_code == 404:
            raise DigestNotFoundError(f"{repository}:{tag} not found in registry")
        if not response.ok:
            raise RegistryError(f"Registry returned HTTP {response.status_code} for {repository}:{tag}")

        digest = response.headers.get(DIGEST_HEADER)
        if not digest:
            raise RegistryError(f"Registry response for {repository}:{tag} has no {DIGEST_HEADER} header")
        return ImageDigest.parse(digest)

    def _head(self, url: str, host: str, path: str) -> requests.Response:
        cache_key = f"{host}/{path}"
        accept = ", ".join(MANIFEST_MEDIA_TYPES)

        try:
            response = self._session.head(
                url,
                headers=get_default_headers(token=self._tokens.get(cache_key), accept=accept),
                timeout=self._timeout,
                allow_redirects=True,
            )
            if response.status_code != 401:
                return response

            scheme, params = parse_auth_challenge(response.headers.get("WWW-Authenticate", ""))
            if scheme == "bearer":
                self._tokens[cache_key] = self._fetch_token(params, path)
                return self._session.head(
                    url,
                    headers=get_default_headers(token=self._tokens[cache_key], accept=accept),
                    timeout=self._timeout,
                    allow_redirects=True,
                )
            if scheme == "basic" and self._username:
                return self._session.head(
                    url,
                    headers=get_default_headers(accept=accept),
                    auth=(self._username, self._password or ""),
                    timeout=self._timeout,
                    allow_redirects=True,
                )
            raise RegistryError(f"Registry {host} requires authentication ({scheme or 'unknown'} challenge)")
        except requests.RequestException as e:
            raise RegistryError(f"Registry request to {host} failed: {e}") from e

    def _fetch_token(self, params: dict[str, str], path: str) -> str:
        realm = params.get("realm")
        if not realm:
            raise RegistryError("Bearer challenge without realm")

        query = {"scope": params.get("scope") or f"repository:{path}:pull"}
        if params.get("service"):
            query["service"] = params["service"]

        auth = (self._username, self._password or "") if self._username else None
        logger.debug(f"Requesting registry token from {realm} (scope={query['scope']})")
        response = self._session.get(realm, params=query, auth=auth, timeout=self._timeout)
        if not response.ok:
            raise RegistryError(f"Token request to {realm} failed with HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise RegistryError(f"Token response from {realm} is not JSON") from e

        token = payload.get("token") or payload.get("access_token")
        if not token:
            raise RegistryError(f"Token response from {realm} has no token")
        return token
