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
FreedomKit -- Local Sidecar API

FastAPI application bound to a loopback address. The app's lifespan
brings the wallet engine up before the socket is bound and tears it down
on exit.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from freedomkit import __version__
from freedomkit.api.middleware import (
    LocalOnlyMiddleware,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
)
from freedomkit.api.routes import health, wallet
from freedomkit.errors import BlockedEgress, SidecarError

if TYPE_CHECKING:
    from freedomkit.runtime import Sidecar

logger = logging.getLogger("freedomkit.api.server")


# =============================================================================
# ERROR MAPPING
# =============================================================================


async def _sidecar_error_handler(request: Request, exc: SidecarError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc, exc.error_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _blocked_egress_handler(request: Request, exc: BlockedEgress) -> JSONResponse:
    logger.warning("%s %s hit the egress guard: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Malformed request body", "code": "bad-request"},
    )


# =============================================================================
# APP FACTORY
# =============================================================================


def create_app(sidecar: Sidecar) -> FastAPI:
    """Build the API around a constructed sidecar."""
    config = sidecar.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await sidecar.startup()
        if sidecar.log:
            sidecar.log.server_start(host=config.api.host, port=config.api.port, version=__version__)
        try:
            yield
        finally:
            await sidecar.shutdown()
            if sidecar.log:
                sidecar.log.server_stop()

    app = FastAPI(
        title="FreedomKit Sidecar",
        description="Local-only wallet and privacy sidecar API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.sidecar = sidecar

    # Last added runs first: request log -> local-only gate -> rate limit
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=config.api.rate_limit_rpm,
        burst=config.api.rate_limit_burst,
    )
    app.add_middleware(LocalOnlyMiddleware, trusted_clients=config.api.trusted_clients)
    app.add_middleware(RequestLoggingMiddleware, log=sidecar.log)

    app.add_exception_handler(SidecarError, _sidecar_error_handler)
    app.add_exception_handler(BlockedEgress, _blocked_egress_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(health.router)
    app.include_router(wallet.router)
    return app
