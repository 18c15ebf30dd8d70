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
"""Sidecar runtime: wires every component together and runs the process.

Startup order (``run()``):

  1. configure logging
  2. install the egress guard (before anything else can open a socket)
  3. load the wallet engine
  4. provision and boot the embedded publisher
  5. bootstrap the engine (app lifespan; failure exits with status 1)
  6. serve the local API with uvicorn on the loopback address
  7. shut everything down on exit
"""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from freedomkit.config import SidecarConfig
from freedomkit.core.logging import SidecarLogger, configure_logging, get_logger
from freedomkit.errors import EngineBootstrapError, ProvisioningError
from freedomkit.lifecycle.coordinator import EngineLifecycleCoordinator, EngineReadiness
from freedomkit.lifecycle.provisioning import PublisherHost
from freedomkit.security.egress import AuditLogger, EgressGuard
from freedomkit.security.vault import CredentialVault
from freedomkit.wallet.engine import WalletEngine, load_engine
from freedomkit.wallet.service import WalletService
from freedomkit.wallet.session import WalletSessionStore

logger = logging.getLogger("freedomkit.runtime")


def build_guard(config: SidecarConfig) -> EgressGuard:
    return EgressGuard(
        audit=AuditLogger(config.audit_log_path),
        proxy_url=config.transport.proxy_url or None,
    )


class Sidecar:
    """All long-lived sidecar components for one process."""

    def __init__(
        self,
        config: SidecarConfig,
        engine: WalletEngine,
        *,
        guard: EgressGuard | None = None,
        log: SidecarLogger | None = None,
    ) -> None:
        self.config = config
        self.log = log
        self.guard = guard or build_guard(config)
        self.audit = self.guard.audit or AuditLogger(config.audit_log_path)
        self.engine = engine

        self.vault = CredentialVault(config.vault.path, iterations=config.vault.kdf_iterations)
        self.sessions = WalletSessionStore()
        self.readiness = EngineReadiness()
        self.coordinator = EngineLifecycleCoordinator(
            engine,
            self.guard,
            data_dir=config.engine.data_dir,
            network=config.engine.network,
            allowed_endpoints=config.engine.allowed_endpoints,
            readiness=self.readiness,
            bootstrap_timeout_s=config.engine.bootstrap_timeout_s,
            call_timeout_s=config.engine.call_timeout_s,
            balance_poll_interval_s=config.engine.balance_poll_interval_s,
        )
        self.wallets = WalletService(
            self.vault,
            self.sessions,
            self.coordinator,
            io_timeout_s=config.vault.io_timeout_s,
            log=log,
        )
        self.publisher = PublisherHost(config.publisher)
        self.bootstrap_error: EngineBootstrapError | None = None

    async def startup(self) -> None:
        """Bootstrap the engine. Records the error before re-raising it."""
        try:
            await self.coordinator.start_engine()
        except EngineBootstrapError as exc:
            self.bootstrap_error = exc
            if self.log:
                self.log.engine("bootstrap", success=False, error=str(exc))
            raise
        if self.log:
            self.log.engine("ready", network=self.config.engine.network)

    async def shutdown(self) -> None:
        """Stop the engine and close the audit log. Never raises."""
        await self.coordinator.shutdown()
        self.audit.close()

    def serve(self) -> int:
        """Boot the publisher and serve the API until interrupted. Returns an exit code."""
        from freedomkit.api.server import create_app

        try:
            self.publisher.provision()
            self.publisher.boot()
        except ProvisioningError as exc:
            logger.error("Startup aborted: %s", exc)
            return 1

        server = uvicorn.Server(
            uvicorn.Config(
                create_app(self),
                host=self.config.api.host,
                port=self.config.api.port,
                lifespan="on",
                log_config=None,
            )
        )
        try:
            asyncio.run(self._serve(server))
        except KeyboardInterrupt:
            logger.info("Interrupted")

        if self.bootstrap_error is not None:
            logger.error("Engine bootstrap failed -- exiting: %s", self.bootstrap_error)
            return 1
        return 0

    async def _serve(self, server: uvicorn.Server) -> None:
        try:
            await server.serve()
        finally:
            await self.shutdown()


def run(config: SidecarConfig) -> int:
    """Full ordered startup for the CLI. Returns the process exit code."""
    configure_logging(config.logging.dir, config.logging.level)
    log = get_logger(config.logging.dir)

    guard = build_guard(config)
    guard.install()
    log.egress("installed", target=config.transport.proxy_url, allowed=True)

    try:
        engine = load_engine(config.engine.factory)
    except (ValueError, ImportError, AttributeError, TypeError) as exc:
        logger.error("Cannot load wallet engine %r: %s", config.engine.factory, exc)
        return 1

    sidecar = Sidecar(config, engine, guard=guard, log=log)
    return sidecar.serve()
