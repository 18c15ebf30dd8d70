# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the create / unlock / lock / re-key wallet flows."""

import asyncio

import pytest
import pytest_asyncio

from fakes import TEST_KDF_ITERATIONS, FakeEngine
from freedomkit.errors import (
    EngineNotInitialized,
    InvalidPasswordOrCorrupted,
    InvalidRequest,
    VaultAlreadyExists,
    VaultNotFound,
    WalletLocked,
)
from freedomkit.lifecycle.coordinator import EngineLifecycleCoordinator
from freedomkit.security.egress import EgressGuard
from freedomkit.security.vault import CredentialVault
from freedomkit.wallet.service import WalletService
from freedomkit.wallet.session import WalletSessionStore


def _service(tmp_path, engine=None):
    coordinator = EngineLifecycleCoordinator(
        engine or FakeEngine(),
        EgressGuard(),
        data_dir=tmp_path / "engine",
        bootstrap_timeout_s=5.0,
        call_timeout_s=5.0,
    )
    vault = CredentialVault(tmp_path / "wallet.enc", iterations=TEST_KDF_ITERATIONS)
    return WalletService(vault, WalletSessionStore(), coordinator, io_timeout_s=5.0), coordinator


@pytest_asyncio.fixture
async def ready(tmp_path):
    service, coordinator = _service(tmp_path)
    await coordinator.start_engine()
    yield service
    await coordinator.shutdown()


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_opens_session(self, ready):
        assert not await ready.exists()
        address = await ready.create("correcthorse1")
        assert address.startswith("0zk")
        assert await ready.exists()
        assert ready.sessions.is_unlocked()
        assert ready.address() == address
        assert ready.viewing_key().startswith("vk-")

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, ready):
        with pytest.raises(InvalidRequest):
            await ready.create("short")
        assert not await ready.exists()

    @pytest.mark.asyncio
    async def test_non_string_password_rejected(self, ready):
        with pytest.raises(InvalidRequest):
            await ready.create(12345678)

    @pytest.mark.asyncio
    async def test_second_create_rejected(self, ready):
        await ready.create("correcthorse1")
        with pytest.raises(VaultAlreadyExists):
            await ready.create("anotherpass1")

    @pytest.mark.asyncio
    async def test_concurrent_creates_one_wins(self, ready):
        results = await asyncio.gather(
            ready.create("correcthorse1"),
            ready.create("batterystaple2"),
            return_exceptions=True,
        )
        addresses = [r for r in results if isinstance(r, str)]
        errors = [r for r in results if isinstance(r, BaseException)]
        assert len(addresses) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], VaultAlreadyExists)
        assert ready.address() == addresses[0]

    @pytest.mark.asyncio
    async def test_create_requires_engine(self, tmp_path):
        service, coordinator = _service(tmp_path)
        with pytest.raises(EngineNotInitialized):
            await service.create("correcthorse1")
        assert not await service.exists()
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_mnemonic_is_twelve_words(self, ready, tmp_path):
        await ready.create("correcthorse1")
        payload = CredentialVault(tmp_path / "wallet.enc").unlock("correcthorse1")
        assert len(payload.mnemonic.split()) == 12
        assert len(bytes.fromhex(payload.engine_salt)) == 32


class TestUnlock:
    @pytest.mark.asyncio
    async def test_unlock_after_restart(self, tmp_path):
        service, coordinator = _service(tmp_path)
        await coordinator.start_engine()
        address = await service.create("correcthorse1")
        await coordinator.shutdown()

        service, coordinator = _service(tmp_path)
        await coordinator.start_engine()
        assert not service.sessions.is_unlocked()
        with pytest.raises(InvalidPasswordOrCorrupted):
            await service.unlock("wrong")
        assert not service.sessions.is_unlocked()
        assert await service.unlock("correcthorse1") == address
        assert service.address() == address
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_tracking_failure_leaves_wallet_locked(self, tmp_path, monkeypatch):
        service, coordinator = _service(tmp_path)
        await coordinator.start_engine()
        await service.create("correcthorse1")
        service.lock()

        async def _fail(wallet_id):
            raise RuntimeError("engine stopped")

        monkeypatch.setattr(coordinator, "start_wallet_tracking", _fail)
        with pytest.raises(RuntimeError):
            await service.unlock("correcthorse1")
        assert not service.sessions.is_unlocked()
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_unlock_without_vault(self, ready):
        with pytest.raises(VaultNotFound):
            await ready.unlock("correcthorse1")

    @pytest.mark.asyncio
    async def test_empty_password_rejected(self, ready):
        with pytest.raises(InvalidRequest):
            await ready.unlock("")


class TestLock:
    @pytest.mark.asyncio
    async def test_lock(self, ready):
        await ready.create("correcthorse1")
        assert ready.lock() is True
        assert ready.lock() is False
        with pytest.raises(WalletLocked):
            ready.address()
        with pytest.raises(WalletLocked):
            await ready.balance()

    @pytest.mark.asyncio
    async def test_relock_and_unlock(self, ready):
        address = await ready.create("correcthorse1")
        ready.lock()
        assert await ready.unlock("correcthorse1") == address


class TestChangePassword:
    @pytest.mark.asyncio
    async def test_change_password(self, ready):
        address = await ready.create("correcthorse1")
        old_engine_id = ready.sessions.current_engine_id()

        assert await ready.change_password("correcthorse1", "batterystaple2") == address
        assert ready.sessions.current_engine_id() != old_engine_id

        ready.lock()
        with pytest.raises(InvalidPasswordOrCorrupted):
            await ready.unlock("correcthorse1")
        assert await ready.unlock("batterystaple2") == address

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, ready):
        await ready.create("correcthorse1")
        with pytest.raises(InvalidPasswordOrCorrupted):
            await ready.change_password("nottheone", "batterystaple2")
        ready.lock()
        assert await ready.unlock("correcthorse1")

    @pytest.mark.asyncio
    async def test_weak_new_password(self, ready):
        await ready.create("correcthorse1")
        with pytest.raises(InvalidRequest):
            await ready.change_password("correcthorse1", "short")

    @pytest.mark.asyncio
    async def test_change_while_locked_keeps_session_closed(self, ready):
        await ready.create("correcthorse1")
        ready.lock()
        await ready.change_password("correcthorse1", "batterystaple2")
        assert not ready.sessions.is_unlocked()


class TestBalance:
    @pytest.mark.asyncio
    async def test_balance(self, tmp_path):
        engine = FakeEngine()
        engine.default_balance = 1_500_000_000_000_000_000
        service, coordinator = _service(tmp_path, engine)
        await coordinator.start_engine()
        await service.create("correcthorse1")

        snapshot = await service.balance()
        assert snapshot.amount == 1_500_000_000_000_000_000
        assert snapshot.formatted() == "1.5"
        assert snapshot.wallet_id == service.sessions.current_engine_id()
        await coordinator.shutdown()
