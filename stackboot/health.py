from __future__ import annotations

import time
from typing import Callable

import httpx


Probe = Callable[[], tuple[bool, str]]


def check_http(
    client: httpx.Client,
    url: str,
    method: str = "GET",
    auth: tuple[str, str] | None = None,
    content: bytes | None = None,
) -> tuple[bool, str, float | None]:
    """Send one probe request.

    Any 2xx counts as ready. Refused connections, timeouts, malformed URLs and
    error statuses are reported as not ready rather than raised.
    Returns (is_ready, message, latency_ms).
    """
    start = time.time()
    try:
        resp = client.request(method, url, auth=auth, content=content)
        latency_ms = round((time.time() - start) * 1000.0, 2)
        if resp.is_success:
            return True, f"HTTP {resp.status_code}", latency_ms
        return False, f"HTTP {resp.status_code}", latency_ms
    except (httpx.ConnectError, httpx.TimeoutException):
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, "No response", latency_ms
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, f"Error: {type(e).__name__}: {e}", latency_ms


def http_probe(client: httpx.Client, url: str, auth: tuple[str, str] | None = None) -> Probe:
    def probe() -> tuple[bool, str]:
        ok, msg, _ = check_http(client, url, auth=auth)
        return ok, msg

    return probe


def put_probe(client: httpx.Client, url: str, body: bytes) -> Probe:
    """A write that doubles as a readiness check: it succeeds once the store accepts it."""

    def probe() -> tuple[bool, str]:
        ok, msg, _ = check_http(client, url, method="PUT", content=body)
        return ok, msg

    return probe
