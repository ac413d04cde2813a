"""HTTP client utilities with consistent user agent."""

from typing import Optional

import requests

from . import __version__

USER_AGENT = f"container-attest/{__version__}"

# Default timeout (connect, read) for registry requests, in seconds
DEFAULT_HTTP_TIMEOUT = (10, 30)


def get_default_headers(token: Optional[str] = None, accept: Optional[str] = None) -> dict:
    """
    Get default HTTP headers with user agent.

    Args:
        token: Optional bearer token to include
        accept: Optional Accept header value

    Returns:
        Dictionary of HTTP headers
    """
    headers = {"User-Agent": USER_AGENT}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if accept:
        headers["Accept"] = accept
    return headers


def create_session() -> requests.Session:
    """Create a requests session carrying the package User-Agent."""
    session = requests.Session()
    session.headers.update(get_default_headers())
    return session
