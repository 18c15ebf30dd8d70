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
"""Guarded httpx transports.

Routing per request:
  - local destination           -> direct transport
  - remote destination + proxy  -> proxied transport (the guard checks the
                                   proxy address, which must be local)
  - remote destination, no proxy -> BlockedEgress before any I/O
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .guard import EgressGuard


class GuardedTransport(httpx.BaseTransport):
    def __init__(
        self,
        guard: EgressGuard,
        direct: httpx.BaseTransport,
        proxied: httpx.BaseTransport | None = None,
    ) -> None:
        self._guard = guard
        self._direct = direct
        self._proxied = proxied

    def _route(self, request: httpx.Request) -> httpx.BaseTransport:
        if self._proxied is not None and not self._guard.permits(request.url):
            self._guard.check(self._guard.proxy_url, via="transport", audit_allowed=True)
            return self._proxied
        self._guard.check(request.url, via="transport", audit_allowed=True)
        return self._direct

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self._route(request).handle_request(request)

    def close(self) -> None:
        self._direct.close()
        if self._proxied is not None:
            self._proxied.close()


class AsyncGuardedTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        guard: EgressGuard,
        direct: httpx.AsyncBaseTransport,
        proxied: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._guard = guard
        self._direct = direct
        self._proxied = proxied

    def _route(self, request: httpx.Request) -> httpx.AsyncBaseTransport:
        if self._proxied is not None and not self._guard.permits(request.url):
            self._guard.check(self._guard.proxy_url, via="transport", audit_allowed=True)
            return self._proxied
        self._guard.check(request.url, via="transport", audit_allowed=True)
        return self._direct

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._route(request).handle_async_request(request)

    async def aclose(self) -> None:
        await self._direct.aclose()
        if self._proxied is not None:
            await self._proxied.aclose()
