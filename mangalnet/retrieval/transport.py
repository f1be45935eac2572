"""
HTTP Transport
==============

Thin wrapper around a ``requests.Session`` that issues GET requests against
the REST API and turns every failure into a RetrievalError. Pagination,
caching and parsing live elsewhere; this is the only module that talks
HTTP.

Response Contract
-----------------
    Listing:  GET {base}/{resource}?count=N&page=P&<filters>
              -> JSON array, "Content-Range: {resource} 0-99/1329"
    Single:   GET {base}/{resource}/{id}
              -> JSON object

Failure Mapping
---------------
    requests.Timeout            -> RetrievalError(TIMEOUT)
    requests.RequestException   -> RetrievalError(TRANSPORT)
    HTTP status >= 400          -> RetrievalError(TRANSPORT, status=...)
    Body is not JSON            -> RetrievalError(TRANSPORT)

Any object with a matching ``get(path, params)`` method can stand in for
HttpTransport (tests use an in-memory server).
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Tuple

import requests

from .config import Config
from .errors import retrieval_error

logger = logging.getLogger("Mangal.Transport")

CONTENT_RANGE_PATTERN = re.compile(r"/\s*(\d+)\s*$")


@dataclass
class TransportResponse:
    """Decoded body plus response headers."""
    payload: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    status: int = 200


def parse_content_range(value: Optional[str]) -> Optional[int]:
    """
    Extract the total from a Content-Range header.

    Examples:
        >>> parse_content_range("network 0-99/1329")
        1329
        >>> parse_content_range("network */0")
        0
        >>> parse_content_range(None) is None
        True
    """
    if not value:
        return None
    match = CONTENT_RANGE_PATTERN.search(value)
    if match is None:
        return None
    return int(match.group(1))


class HttpTransport:
    """
    requests-backed transport.

    Attributes:
        base_url: API root, e.g. "https://mangal.io/api/v2"
        timeout: Per-request timeout in seconds

    Example:
        >>> transport = HttpTransport()
        >>> resp = transport.get("network", [("count", "10"), ("page", "0")])
        >>> len(resp.payload)
        10
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.base_url = (base_url or Config.API.BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else Config.API.TIMEOUT_SECONDS
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": Config.API.USER_AGENT,
        })
        if headers:
            self.session.headers.update(headers)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def get(self, path: str, params: Sequence[Tuple[str, str]] = ()) -> TransportResponse:
        """
        Issue one GET request.

        Raises:
            RetrievalError: On timeout, connection failure, HTTP error
                status or undecodable body
        """
        url = self.url_for(path)
        logger.debug(f"GET {url} params={list(params)}")

        try:
            resp = self.session.get(url, params=list(params), timeout=self.timeout)
        except requests.Timeout as e:
            raise retrieval_error(
                f"GET {path} timed out after {self.timeout}s", cause=e, timeout=True
            ) from e
        except requests.RequestException as e:
            raise retrieval_error(f"GET {path} failed: {e}", cause=e) from e

        if resp.status_code >= 400:
            raise retrieval_error(
                f"GET {path} returned HTTP {resp.status_code}",
                status=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise retrieval_error(
                f"GET {path} returned a non-JSON body", status=resp.status_code, cause=e
            ) from e

        return TransportResponse(payload=payload, headers=resp.headers, status=resp.status_code)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()
