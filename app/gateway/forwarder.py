# app/gateway/forwarder.py
"""
Outbound call to the origin API.

The forwarder relays method, body and end-to-end headers to the origin
and classifies what came back:

- UpstreamResponse: the origin answered, whatever the status code.
  4xx and 5xx from the origin are still billable.
- UpstreamUnreachable: no answer at all (DNS, refused connection,
  timeout). Never billable.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

import requests
from requests.exceptions import RequestException, Timeout

from app.gateway.registry import RegistryEntry

logger = logging.getLogger(__name__)

# Hop-by-hop headers (RFC 7230 6.1) plus framing headers the HTTP client
# recomputes for the outbound message
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "content-length",
}

# requests decodes compressed bodies, so these no longer describe the
# bytes we hand back
DECODED_RESPONSE_HEADERS = {"content-encoding", "content-length"}


HeaderItems = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


@dataclass(frozen=True)
class UpstreamUnreachable:
    reason: str


ForwardOutcome = Union[UpstreamResponse, UpstreamUnreachable]


def _header_items(headers: HeaderItems) -> Iterable[Tuple[str, str]]:
    return headers.items() if isinstance(headers, Mapping) else headers


def build_target_url(origin_base_url: str, remainder: str, query_string: str = "") -> str:
    """
    Join origin base URL, remainder path and query string.

    Args:
        origin_base_url: e.g. "https://example.test" or "https://example.test/v1/"
        remainder: Path after the slug, starting with "/", still percent-encoded
        query_string: "" or "?a=b", still percent-encoded

    Returns:
        Absolute target URL
    """
    if query_string and not query_string.startswith("?"):
        query_string = f"?{query_string}"
    return f"{origin_base_url.rstrip('/')}{remainder}{query_string}"


def build_outbound_headers(
    inbound_headers: HeaderItems,
    origin_base_url: str,
    identity_header: str
) -> Dict[str, str]:
    """
    Copy inbound headers for the origin call.

    Drops hop-by-hop headers and the caller identity header, and points
    Host at the origin. Repeated headers are combined into one
    comma-separated value.
    """
    excluded = HOP_BY_HOP_HEADERS | {"host", identity_header.lower()}
    headers: Dict[str, str] = {}
    for name, value in _header_items(inbound_headers):
        if name.lower() in excluded:
            continue
        headers[name] = f"{headers[name]}, {value}" if name in headers else value
    headers["Host"] = urlparse(origin_base_url).netloc
    return headers


def filter_response_headers(upstream_headers: HeaderItems) -> List[Tuple[str, str]]:
    """Drop hop-by-hop and already-decoded framing headers from an origin response."""
    excluded = HOP_BY_HOP_HEADERS | DECODED_RESPONSE_HEADERS
    return [
        (name, value)
        for name, value in _header_items(upstream_headers)
        if name.lower() not in excluded
    ]


def response_header_items(response: requests.Response) -> List[Tuple[str, str]]:
    """
    Origin response headers with repeats kept apart.

    requests folds repeated headers (e.g. several Set-Cookie) into one
    comma-joined value; the underlying urllib3 headers keep each one.
    """
    raw_headers = getattr(response.raw, "headers", None)
    if isinstance(raw_headers, Mapping):
        return list(raw_headers.items())
    return list(response.headers.items())


class Forwarder:
    """Issues the proxied call with a bounded timeout."""

    def __init__(self, identity_header: str, timeout_seconds: float = 10.0):
        self.identity_header = identity_header
        self.timeout_seconds = timeout_seconds

    def forward(
        self,
        entry: RegistryEntry,
        method: str,
        remainder: str,
        query_string: str,
        body: Optional[bytes],
        inbound_headers: HeaderItems
    ) -> ForwardOutcome:
        """
        Forward one request to the origin.

        Blocking; the proxy runs it in a worker thread.

        Returns:
            UpstreamResponse for any HTTP response, UpstreamUnreachable
            for transport-level failures
        """
        origin_base_url = entry.origin_base_url
        target_url = build_target_url(origin_base_url, remainder, query_string)
        headers = build_outbound_headers(inbound_headers, origin_base_url, self.identity_header)

        try:
            response = requests.request(
                method=method,
                url=target_url,
                data=body or None,
                headers=headers,
                timeout=self.timeout_seconds,
                allow_redirects=False,
            )
        except Timeout as e:
            logger.error(f"Origin timed out after {self.timeout_seconds}s ({method} {target_url}): {e}")
            return UpstreamUnreachable(reason=f"Timed out after {self.timeout_seconds}s")
        except RequestException as e:
            logger.error(f"Origin unreachable ({method} {target_url}): {e}")
            return UpstreamUnreachable(reason=str(e))

        logger.debug(f"Origin answered {response.status_code} for {method} {target_url}")
        return UpstreamResponse(
            status_code=response.status_code,
            headers=filter_response_headers(response_header_items(response)),
            body=response.content,
        )
