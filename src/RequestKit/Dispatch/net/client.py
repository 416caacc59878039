"""HTTPX client construction for the bundled session manager.

Architecture:
1. build_http_client(config) → httpx.Client with explicit timeouts and pool limits
2. Event hooks stamp a request id and log each exchange with masked headers
3. Callers own the client's lifetime (no process-wide singleton)
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from ..config.models import HttpClientConfig
from ..logging_config import generate_correlation_id, mask_sensitive_data

logger = logging.getLogger(__name__)


def build_http_client(
    config: Optional[HttpClientConfig] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Build a new HTTPX client from config.

    Args:
        config: Client settings; defaults apply when omitted.
        transport: Optional transport override (e.g. ``httpx.MockTransport``).
    """
    cfg = config or HttpClientConfig()

    timeout = httpx.Timeout(
        connect=cfg.timeout_connect_s,
        read=cfg.timeout_read_s,
        write=cfg.timeout_write_s,
        pool=cfg.timeout_pool_s,
    )
    limits = httpx.Limits(
        max_connections=cfg.max_connections,
        max_keepalive_connections=cfg.max_keepalive_connections,
        keepalive_expiry=cfg.keepalive_expiry_s,
    )

    client = httpx.Client(
        http2=cfg.http2,
        transport=transport,
        timeout=timeout,
        limits=limits,
        verify=cfg.verify_tls,
        trust_env=cfg.trust_env,
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=cfg.follow_redirects,
        event_hooks={"request": [_on_request], "response": [_on_response]},
    )
    logger.debug("HTTPX client created: http2=%s redirects=%s", cfg.http2, cfg.follow_redirects)
    return client


def _on_request(request: httpx.Request) -> None:
    """Hook: capture request start time and id."""
    request.extensions["t0_perf"] = time.perf_counter()
    request.extensions["request_id"] = generate_correlation_id()
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "http.request %s %s headers=%s",
            request.method,
            request.url,
            mask_sensitive_data(dict(request.headers)),
            extra={"correlation_id": request.extensions["request_id"]},
        )


def _on_response(response: httpx.Response) -> None:
    """Hook: log status and elapsed time."""
    request = response.request
    t0 = request.extensions.get("t0_perf", time.perf_counter())
    elapsed_ms = (time.perf_counter() - t0) * 1000.0
    logger.debug(
        "http.response %s %s status=%s elapsed_ms=%.1f",
        request.method,
        request.url,
        response.status_code,
        elapsed_ms,
        extra={"correlation_id": request.extensions.get("request_id")},
    )
