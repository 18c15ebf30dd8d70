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
"""Recurring spendable-balance observation for the active wallet."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal

from freedomkit.wallet.engine import WalletEngine

logger = logging.getLogger("freedomkit.lifecycle.balances")

TOKEN_DECIMALS = 18


@dataclass(frozen=True)
class BalanceSnapshot:
    wallet_id: str
    amount: int  # base units
    decimals: int = TOKEN_DECIMALS
    updated_at: float = 0.0

    def formatted(self) -> str:
        """Decimal string, e.g. 1500000000000000000 -> "1.5"."""
        value = Decimal(self.amount).scaleb(-self.decimals)
        text = format(value, "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text or "0"


class BalanceTracker:
    """Polls the engine for one wallet's spendable balance.

    Per-poll failures are logged and the loop carries on. ``stop()``
    cancels the task; the tracker can be started again afterwards.
    """

    def __init__(self, engine: WalletEngine, interval_s: float = 30.0, call_timeout_s: float = 60.0):
        self._engine = engine
        self._interval = max(interval_s, 0.01)
        self._call_timeout = call_timeout_s
        self._wallet_id: str | None = None
        self._snapshot: BalanceSnapshot | None = None
        self._task: asyncio.Task | None = None
        self._failures = 0

    @property
    def wallet_id(self) -> str | None:
        return self._wallet_id

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def failures(self) -> int:
        return self._failures

    def latest(self, wallet_id: str | None = None) -> BalanceSnapshot | None:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        if wallet_id is not None and snapshot.wallet_id != wallet_id:
            return None
        return snapshot

    def start(self, wallet_id: str) -> None:
        if self.is_running:
            logger.warning("Balance tracker already running for %s", self._wallet_id)
            return
        self._wallet_id = wallet_id
        self._task = asyncio.create_task(self._run(), name="balance-tracker")
        logger.info("Balance tracking started (interval=%.1fs)", self._interval)

    def retarget(self, wallet_id: str) -> None:
        """Switch the observed wallet; the next poll uses the new id."""
        if wallet_id != self._wallet_id:
            self._wallet_id = wallet_id
            self._snapshot = None
            logger.info("Balance tracking retargeted")

    async def refresh(self) -> BalanceSnapshot:
        """Query the engine once and store the result."""
        wallet_id = self._wallet_id
        if wallet_id is None:
            raise RuntimeError("Balance tracker has no wallet")
        amount = await asyncio.wait_for(
            self._engine.get_spendable_balance(wallet_id), timeout=self._call_timeout
        )
        snapshot = BalanceSnapshot(wallet_id=wallet_id, amount=int(amount), updated_at=time.time())
        if wallet_id == self._wallet_id:
            self._snapshot = snapshot
        return snapshot

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
                self._failures = 0
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._failures += 1
                logger.warning("Balance poll failed (%d in a row): %s", self._failures, exc)
            await asyncio.sleep(self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Balance tracking stopped")
