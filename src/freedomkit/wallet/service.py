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
"""Wallet service: the create / unlock / lock / re-key flows.

Ties the vault, the engine (via the coordinator) and the session together.
Flows that touch the vault are serialized with an ``asyncio.Lock``; vault
file I/O runs in a worker thread under ``io_timeout_s``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any

from mnemonic import Mnemonic

from freedomkit.core.logging import SidecarLogger
from freedomkit.errors import InvalidRequest, OperationTimeout, VaultAlreadyExists
from freedomkit.lifecycle.balances import BalanceSnapshot
from freedomkit.lifecycle.coordinator import EngineLifecycleCoordinator
from freedomkit.security.vault import CredentialVault, VaultPayload, derive_engine_key
from freedomkit.wallet.engine import EngineWallet
from freedomkit.wallet.session import WalletSessionStore

logger = logging.getLogger("freedomkit.wallet.service")

MIN_PASSWORD_LENGTH = 8
MNEMONIC_STRENGTH = 128  # 12 words
ENGINE_SALT_BYTES = 32


def _validate_new_password(password: Any) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def _require_password(password: Any) -> str:
    if not isinstance(password, str) or not password:
        raise InvalidRequest("Password is required")
    return password


class WalletService:
    def __init__(
        self,
        vault: CredentialVault,
        sessions: WalletSessionStore,
        coordinator: EngineLifecycleCoordinator,
        *,
        io_timeout_s: float = 10.0,
        log: SidecarLogger | None = None,
    ) -> None:
        self._vault = vault
        self._sessions = sessions
        self._coordinator = coordinator
        self._io_timeout = io_timeout_s
        self._log = log
        self._lock = asyncio.Lock()
        self._mnemonic = Mnemonic("english")

    @property
    def sessions(self) -> WalletSessionStore:
        return self._sessions

    async def _io(self, func, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs), timeout=self._io_timeout
            )
        except asyncio.TimeoutError:
            logger.error("Vault I/O timed out after %.0fs", self._io_timeout)
            raise OperationTimeout("Wallet file access timed out") from None

    def _audit(self, action: str, address: str = "", success: bool = True) -> None:
        if self._log:
            self._log.wallet(action, address=address, success=success)

    async def _open_session(self, wallet: EngineWallet) -> str:
        # The session opens last so a failed step leaves the wallet locked
        viewing_key = await self._coordinator.call("get_shareable_viewing_key", wallet.id)
        await self._coordinator.start_wallet_tracking(wallet.id)
        self._coordinator.retarget_wallet(wallet.id)
        self._sessions.open(wallet.id, wallet.address, viewing_key)
        return wallet.address

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------
    async def exists(self) -> bool:
        return await self._io(self._vault.exists)

    async def create(self, password: Any) -> str:
        """Generate a new wallet, seal it under ``password`` and open a session.

        Returns the wallet's public address.
        """
        password = _validate_new_password(password)
        async with self._lock:
            self._coordinator.readiness.require_engine()
            if await self.exists():
                raise VaultAlreadyExists()

            logger.info("Creating new wallet")
            mnemonic = self._mnemonic.generate(strength=MNEMONIC_STRENGTH)
            engine_salt = os.urandom(ENGINE_SALT_BYTES)
            engine_key = await asyncio.to_thread(derive_engine_key, password, engine_salt)

            wallet = await self._coordinator.call("create_wallet", engine_key, mnemonic)
            await self._io(self._vault.create, mnemonic, wallet.id, engine_salt.hex(), password)
            if self._log:
                self._log.vault("create")

            address = await self._open_session(wallet)
            self._audit("create", address)
            return address

    async def unlock(self, password: Any) -> str:
        """Decrypt the vault, load the wallet into the engine and open a session."""
        password = _require_password(password)
        async with self._lock:
            try:
                payload: VaultPayload = await self._io(self._vault.unlock, password)
            except Exception:
                if self._log:
                    self._log.vault("unlock", success=False)
                raise
            if self._log:
                self._log.vault("unlock")

            self._coordinator.readiness.require_engine()
            engine_key = await asyncio.to_thread(derive_engine_key, password, payload.engine_salt)
            wallet = await self._coordinator.call("load_wallet", engine_key, payload.engine_wallet_id)

            address = await self._open_session(wallet)
            self._audit("unlock", address)
            return address

    def lock(self) -> bool:
        """Forget the session. Balance tracking keeps running in the background."""
        was_open = self._sessions.clear()
        self._audit("lock")
        return was_open

    async def change_password(self, current_password: Any, new_password: Any) -> str:
        """Re-key the vault and the engine wallet under a new password.

        The wallet is re-imported into the engine from its mnemonic with a
        key derived from the new password, then the vault is rewritten with
        the new engine identifiers in the same atomic replace.
        """
        current_password = _require_password(current_password)
        new_password = _validate_new_password(new_password)
        async with self._lock:
            payload: VaultPayload = await self._io(self._vault.unlock, current_password)
            self._coordinator.readiness.require_engine()

            engine_salt = os.urandom(ENGINE_SALT_BYTES)
            engine_key = await asyncio.to_thread(derive_engine_key, new_password, engine_salt)
            wallet = await self._coordinator.call("create_wallet", engine_key, payload.mnemonic)

            await self._io(
                self._vault.rekey,
                current_password,
                new_password,
                engine_wallet_id=wallet.id,
                engine_salt=engine_salt.hex(),
            )
            if self._log:
                self._log.vault("rekey")

            if self._sessions.is_unlocked():
                viewing_key = await self._coordinator.call("get_shareable_viewing_key", wallet.id)
                self._sessions.open(wallet.id, wallet.address, viewing_key)
                self._coordinator.retarget_wallet(wallet.id)
            self._audit("password_changed", wallet.address)
            return wallet.address

    # ------------------------------------------------------------------
    # Session reads
    # ------------------------------------------------------------------
    def address(self) -> str:
        return self._sessions.current_address()

    def viewing_key(self) -> str:
        return self._sessions.viewing_key()

    async def balance(self) -> BalanceSnapshot:
        """Latest spendable balance; asks the engine once if none is cached yet."""
        wallet_id = self._sessions.current_engine_id()
        snapshot = self._coordinator.tracker.latest(wallet_id)
        if snapshot is not None:
            return snapshot
        amount = await self._coordinator.call("get_spendable_balance", wallet_id)
        return BalanceSnapshot(wallet_id=wallet_id, amount=int(amount), updated_at=time.time())
