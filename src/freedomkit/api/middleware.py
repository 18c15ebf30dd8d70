# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
#
# This file is part of FreedomKit Sidecar.
#
# FreedomKit Sidecar is dual-licensed:
#
# 1. Open Source: GNU Affero General Public License v3.0 (AGPL-3.0)
#    You may use, modify, and distribute this file under AGPL-3.0.
#    See LICENSE for the full text.
#
# 2. Commercial: Available from Phoenix Link (Pty) Ltd
#    For proprietary use, SaaS deployment, or enterprise licensing.
#    See LICENSE-ENTERPRISE.md or contact info@phoenixlink.co.za
#
# Contributions require a signed CLA. See COPYRIGHT.md and CLA.md.
"""
FreedomKit -- API Middleware (Local-only + Rate Limiting + Request Log)

- Local-only gate: requests from non-loopback clients get 403
- Token-bucket rate limiter (per client), mainly to slow password guessing
- Request logging through the SidecarLogger
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from freedomkit.core.logging import SidecarLogger

logger = logging.getLogger("freedomkit.api.middleware")

_PROBE_PATHS = frozenset({"/health"})


# =============================================================================
# LOCAL-ONLY CLIENTS
# =============================================================================


class LocalOnlyMiddleware(BaseHTTPMiddleware):
    """Reject any client whose address is not in the trusted set."""

    def __init__(self, app, trusted_clients: Iterable[str]):
        super().__init__(app)
        self.trusted = frozenset(trusted_clients)

    async def dispatch(self, request: Request, call_next):
        client_host = request.client.host if request.client else ""
        if client_host not in self.trusted:
            logger.warning("Rejected non-local client %r on %s", client_host, request.url.path)
            return JSONResponse(
                status_code=403,
                content={"error": "Local clients only", "code": "forbidden"},
            )
        return await call_next(request)


# =============================================================================
# RATE LIMITING (token bucket, per client)
# =============================================================================


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Token-bucket rate limiter per client address.

    Defaults: 120 requests/minute, burst of 20. Health probes are exempt.
    """

    def __init__(self, app, requests_per_minute: int = 120, burst: int = 20):
        super().__init__(app)
        self.rate = requests_per_minute / 60.0  # tokens per second
        self.burst = burst
        self._buckets: dict = defaultdict(lambda: {"tokens": burst, "last": time.monotonic()})

    def _consume(self, client: str) -> bool:
        """Try to consume a token. Returns True if allowed."""
        bucket = self._buckets[client]
        now = time.monotonic()
        elapsed = now - bucket["last"]
        bucket["last"] = now

        bucket["tokens"] = min(self.burst, bucket["tokens"] + elapsed * self.rate)

        if bucket["tokens"] >= 1.0:
            bucket["tokens"] -= 1.0
            return True
        return False

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in _PROBE_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        if not self._consume(client):
            logger.warning("Rate limit exceeded for %s on %s", client, path)
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded. Try again shortly.", "code": "rate-limited"},
                headers={"Retry-After": "1"},
            )

        return await call_next(request)


# =============================================================================
# REQUEST LOGGING
# =============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status, and latency."""

    def __init__(self, app, log: SidecarLogger | None = None):
        super().__init__(app)
        self._log = log

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        latency_ms = int((time.time() - start) * 1000)
        path = request.url.path
        if self._log and path not in _PROBE_PATHS:
            self._log.http_request(
                method=request.method,
                path=path,
                status=response.status_code,
                latency_ms=latency_ms,
            )
        return response
