"""
Pass-through gateway to the Replicate API.

Lets a browser talk to Replicate without CORS trouble. Requests are relayed
as-is and upstream responses, error statuses included, come back unchanged.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Tuple

import requests

from .errors import ProxyError

logger = logging.getLogger(__name__)

PROXY_PREFIX = "/replicate"
DROPPED_HEADERS = frozenset({"host", "content-length"})


def upstream_url(path: str, base_url: str = "https://api.replicate.com/v1") -> str:
    """
    Map `/replicate/<rest>` onto `<base_url>/<rest>`.

    `base_url` already ends in the API version, so a `<rest>` that repeats it
    (`/replicate/v1/predictions`) is not doubled.
    """
    rest = path
    if rest.startswith(PROXY_PREFIX):
        rest = rest[len(PROXY_PREFIX):]
    rest = rest.lstrip("/")
    base = base_url.rstrip("/")
    version = base.rsplit("/", 1)[-1]
    if rest == version or rest.startswith(version + "/"):
        rest = rest[len(version):].lstrip("/")
    return f"{base}/{rest}" if rest else base


def forward_headers(headers: Mapping[str, str]) -> dict:
    forwarded = {"Content-Type": "application/json"}
    for name, value in headers.items():
        if name.lower() in DROPPED_HEADERS:
            continue
        if name.lower() == "content-type":
            forwarded["Content-Type"] = value
            continue
        forwarded[name] = value
    return forwarded


def forward(
    method: str,
    path: str,
    headers: Mapping[str, str],
    body: Optional[bytes] = None,
    query: Optional[str] = None,
    *,
    base_url: str = "https://api.replicate.com/v1",
    session: Optional[requests.Session] = None,
    timeout_seconds: int = 30,
) -> Tuple[int, Any]:
    """
    Relay one request upstream and return (status code, decoded JSON body).

    Raises:
        ProxyError: the upstream could not be reached or did not answer with JSON.
    """
    url = upstream_url(path, base_url)
    if query:
        url = f"{url}?{query}"
    http = session or requests

    try:
        resp = http.request(
            method.upper(),
            url,
            headers=forward_headers(headers),
            data=body or None,
            timeout=timeout_seconds,
        )
        # HEAD answers carry no body
        data = None if method.upper() == "HEAD" else resp.json()
    except requests.RequestException as exc:
        logger.error("proxy %s %s failed: %s", method, url, exc)
        raise ProxyError("Proxy request failed", details={"details": str(exc)}) from exc
    except ValueError as exc:
        logger.error("proxy %s %s returned non-JSON body: %s", method, url, exc)
        raise ProxyError("Proxy request failed", details={"details": str(exc)}) from exc

    logger.debug("proxy %s %s -> %s", method, url, resp.status_code)
    return resp.status_code, data
