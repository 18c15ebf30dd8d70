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
"""Engine Lifecycle Coordinator

Brings the embedded wallet engine up, starts balance observation once a
wallet is open, and tears everything down on exit.

    uninitialized -> engine_starting -> engine_ready -> wallet_starting -> wallet_ready
    (any state) -> stopped

A failed engine bootstrap returns to ``uninitialized`` and raises
``EngineBootstrapError`` (fatal to the process). A failed tracking start
returns to ``engine_ready``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any

from freedomkit.errors import (
    EngineBootstrapError,
    EngineNotInitialized,
    InvalidTransitionError,
    OperationTimeout,
)
from freedomkit.lifecycle.balances import BalanceTracker
from freedomkit.lifecycle.storage import ArtifactStore, EngineDatabase
from freedomkit.security.egress import EgressGuard
from freedomkit.wallet.engine import EngineContext, FeeTable, WalletEngine

logger = logging.getLogger("freedomkit.lifecycle.coordinator")


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ENGINE_STARTING = "engine_starting"
    ENGINE_READY = "engine_ready"
    WALLET_STARTING = "wallet_starting"
    WALLET_READY = "wallet_ready"
    STOPPED = "stopped"


VALID_TRANSITIONS: dict[EngineState, set[EngineState]] = {
    EngineState.UNINITIALIZED: {EngineState.ENGINE_STARTING, EngineState.STOPPED},
    EngineState.ENGINE_STARTING: {
        EngineState.ENGINE_READY,
        EngineState.UNINITIALIZED,
        EngineState.STOPPED,
    },
    EngineState.ENGINE_READY: {EngineState.WALLET_STARTING, EngineState.STOPPED},
    EngineState.WALLET_STARTING: {
        EngineState.WALLET_READY,
        EngineState.ENGINE_READY,
        EngineState.STOPPED,
    },
    EngineState.WALLET_READY: {EngineState.STOPPED},
    EngineState.STOPPED: set(),
}


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------
class EngineReadiness:
    """Two monotonic readiness flags, shared with everything that needs them.

    ``wallet_initialized`` can only be set after ``engine_initialized``.
    ``stopped`` is set once on shutdown and makes the engine unusable.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._engine_initialized = False
        self._wallet_initialized = False
        self._stopped = False

    @property
    def engine_initialized(self) -> bool:
        return self._engine_initialized

    @property
    def wallet_initialized(self) -> bool:
        return self._wallet_initialized

    @property
    def stopped(self) -> bool:
        return self._stopped

    def mark_engine_ready(self) -> None:
        with self._lock:
            self._engine_initialized = True

    def mark_wallet_ready(self) -> None:
        with self._lock:
            if not self._engine_initialized:
                raise InvalidTransitionError("Wallet cannot be ready before the engine")
            self._wallet_initialized = True

    def mark_stopped(self) -> None:
        with self._lock:
            self._stopped = True

    def require_engine(self) -> None:
        """Raise EngineNotInitialized unless the engine is usable."""
        if self._stopped:
            raise EngineNotInitialized("Wallet engine has been shut down")
        if not self._engine_initialized:
            raise EngineNotInitialized()

    def to_dict(self) -> dict[str, bool]:
        return {
            "engine_initialized": self._engine_initialized,
            "wallet_initialized": self._wallet_initialized,
            "stopped": self._stopped,
        }


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------
class EngineLifecycleCoordinator:
    """Owns the engine, its storage and the balance tracker.

    Transitions run under an ``asyncio.Lock``. ``shutdown()`` does not take
    the lock so it can interrupt a hung bootstrap.
    """

    def __init__(
        self,
        engine: WalletEngine,
        guard: EgressGuard,
        *,
        data_dir: str | Path,
        network: str = "Ethereum_Sepolia",
        allowed_endpoints: list[str] | None = None,
        readiness: EngineReadiness | None = None,
        bootstrap_timeout_s: float = 120.0,
        call_timeout_s: float = 60.0,
        balance_poll_interval_s: float = 30.0,
    ) -> None:
        self._engine = engine
        self._guard = guard
        self._data_dir = Path(data_dir)
        self._network = network
        self._allowed_endpoints = list(allowed_endpoints or [])
        self._readiness = readiness or EngineReadiness()
        self._bootstrap_timeout = bootstrap_timeout_s
        self._call_timeout = call_timeout_s

        self._state = EngineState.UNINITIALIZED
        self._lock = asyncio.Lock()
        self._db: EngineDatabase | None = None
        self._artifacts: ArtifactStore | None = None
        self._fee_table: FeeTable | None = None
        self._engine_touched = False
        self._shutdown_started = False
        self._tracker = BalanceTracker(
            engine, interval_s=balance_poll_interval_s, call_timeout_s=call_timeout_s
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def readiness(self) -> EngineReadiness:
        return self._readiness

    @property
    def tracker(self) -> BalanceTracker:
        return self._tracker

    @property
    def fee_table(self) -> FeeTable | None:
        return self._fee_table

    @property
    def db(self) -> EngineDatabase | None:
        return self._db

    def _transition(self, new_state: EngineState) -> None:
        valid = VALID_TRANSITIONS.get(self._state, set())
        if new_state not in valid:
            raise InvalidTransitionError(
                f"Cannot transition from {self._state.value} to {new_state.value}. "
                f"Valid: {', '.join(s.value for s in valid) or 'none'}"
            )
        logger.debug("Engine state %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------
    async def start_engine(self, data_dir: str | Path | None = None) -> FeeTable | None:
        """Provision storage and bootstrap the engine.

        A second call once the engine is up is a no-op.

        Raises:
            EngineBootstrapError: bootstrap failed or timed out.
        """
        async with self._lock:
            if self._state in (
                EngineState.ENGINE_READY,
                EngineState.WALLET_STARTING,
                EngineState.WALLET_READY,
            ):
                logger.warning("Engine already started -- skipping")
                return self._fee_table
            if self._state is EngineState.STOPPED:
                raise EngineBootstrapError("Engine has been shut down")

            self._transition(EngineState.ENGINE_STARTING)
            if data_dir is not None:
                self._data_dir = Path(data_dir)

            try:
                context = self._provision_storage()
                self._engine_touched = True
                fee_table = await asyncio.wait_for(
                    self._engine.init_engine(context), timeout=self._bootstrap_timeout
                )
            except asyncio.TimeoutError:
                self._abort_start()
                logger.error("Engine bootstrap timed out after %.0fs", self._bootstrap_timeout)
                raise EngineBootstrapError(
                    f"Engine bootstrap timed out after {self._bootstrap_timeout:.0f}s"
                ) from None
            except Exception as exc:
                self._abort_start()
                logger.error("Engine bootstrap failed: %s", exc)
                raise EngineBootstrapError(f"Engine bootstrap failed: {exc}") from exc

            if self._state is not EngineState.ENGINE_STARTING:
                # shutdown() ran while init_engine was in flight
                raise EngineBootstrapError("Engine was shut down during bootstrap")

            self._fee_table = fee_table
            self._transition(EngineState.ENGINE_READY)
            self._readiness.mark_engine_ready()
            logger.info("Engine ready (network=%s)", self._network)
            return fee_table

    def _provision_storage(self) -> EngineContext:
        wallets_dir = self._data_dir / "wallets"
        artifacts_dir = self._data_dir / "artifacts"
        wallets_dir.mkdir(parents=True, exist_ok=True)
        artifacts_dir.mkdir(parents=True, exist_ok=True)

        self._db = EngineDatabase(wallets_dir / "engine.db")
        self._artifacts = ArtifactStore(artifacts_dir)
        return EngineContext(
            data_dir=self._data_dir,
            db=self._db,
            artifacts=self._artifacts,
            network=self._network,
            guard=self._guard,
            allowed_endpoints=list(self._allowed_endpoints),
        )

    def _abort_start(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None
        if self._state is EngineState.ENGINE_STARTING:
            self._transition(EngineState.UNINITIALIZED)

    async def call(self, method: str, *args: Any) -> Any:
        """Invoke an engine method under the call timeout.

        Raises:
            EngineNotInitialized: engine not ready (or shut down).
            OperationTimeout: the engine did not answer in time.
        """
        self._readiness.require_engine()
        func = getattr(self._engine, method)
        try:
            return await asyncio.wait_for(func(*args), timeout=self._call_timeout)
        except asyncio.TimeoutError:
            logger.error("Engine call %s timed out after %.0fs", method, self._call_timeout)
            raise OperationTimeout(f"Engine call {method} timed out") from None

    # ------------------------------------------------------------------
    # Wallet tracking
    # ------------------------------------------------------------------
    async def start_wallet_tracking(self, engine_wallet_id: str) -> None:
        """Begin recurring balance observation for the opened wallet.

        Raises:
            EngineNotInitialized: the engine is not ready yet.
        """
        async with self._lock:
            self._readiness.require_engine()
            if self._state is EngineState.WALLET_READY:
                logger.warning("Wallet tracking already running -- skipping")
                return

            self._transition(EngineState.WALLET_STARTING)
            try:
                self._tracker.start(engine_wallet_id)
            except Exception:
                self._transition(EngineState.ENGINE_READY)
                raise
            self._transition(EngineState.WALLET_READY)
            self._readiness.mark_wallet_ready()

    def retarget_wallet(self, engine_wallet_id: str) -> None:
        """Point balance tracking at a new engine wallet id (after a re-key)."""
        self._tracker.retarget(engine_wallet_id)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------
    async def shutdown(self) -> None:
        """Stop tracking and the engine. Never raises; safe to call repeatedly."""
        if self._shutdown_started:
            return
        self._shutdown_started = True
        self._readiness.mark_stopped()

        try:
            await self._tracker.stop()
        except Exception as exc:
            logger.warning("Balance tracker stop error (non-fatal): %s", exc)

        if self._engine_touched:
            try:
                await asyncio.wait_for(self._engine.shutdown(), timeout=self._call_timeout)
                logger.info("Engine stopped cleanly")
            except Exception as exc:
                logger.warning("Engine shutdown error (non-fatal): %s", exc)

        try:
            if self._db is not None:
                self._db.close()
        except Exception as exc:
            logger.warning("Engine database close error (non-fatal): %s", exc)

        self._state = EngineState.STOPPED

    def get_status(self) -> dict[str, Any]:
        """Status dict for the health endpoint."""
        result: dict[str, Any] = {"state": self._state.value, "network": self._network}
        result.update(self._readiness.to_dict())
        snapshot = self._tracker.latest()
        if snapshot is not None:
            result["balance_updated_at"] = snapshot.updated_at
        return result
