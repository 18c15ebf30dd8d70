# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for balance snapshots and the polling tracker."""

import asyncio

import pytest

from fakes import FakeEngine
from freedomkit.lifecycle.balances import BalanceSnapshot, BalanceTracker


class TestBalanceSnapshot:
    @pytest.mark.parametrize(
        "amount,expected",
        [
            (0, "0"),
            (1, "0.000000000000000001"),
            (1_500_000_000_000_000_000, "1.5"),
            (2 * 10**18, "2"),
            (123_456_789_000_000_000_000, "123456.789"),
        ],
    )
    def test_formatted(self, amount, expected):
        assert BalanceSnapshot(wallet_id="w", amount=amount).formatted() == expected


class TestBalanceTracker:
    @pytest.mark.asyncio
    async def test_polls_engine(self):
        engine = FakeEngine()
        engine.balances["w1"] = 42
        tracker = BalanceTracker(engine, interval_s=0.01)
        tracker.start("w1")
        await asyncio.sleep(0.05)
        await tracker.stop()
        assert engine.balance_calls >= 2
        assert tracker.latest("w1").amount == 42
        assert not tracker.is_running

    @pytest.mark.asyncio
    async def test_survives_poll_failures(self):
        engine = FakeEngine()
        calls = {"n": 0}

        async def flaky(wallet_id):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("provider unavailable")
            return 7

        engine.get_spendable_balance = flaky
        tracker = BalanceTracker(engine, interval_s=0.01)
        tracker.start("w1")
        await asyncio.sleep(0.05)
        await tracker.stop()
        assert calls["n"] >= 2
        assert tracker.latest().amount == 7

    @pytest.mark.asyncio
    async def test_double_start_is_noop(self):
        tracker = BalanceTracker(FakeEngine(), interval_s=10)
        tracker.start("w1")
        first = tracker._task
        tracker.start("w2")
        assert tracker._task is first
        assert tracker.wallet_id == "w1"
        await tracker.stop()

    @pytest.mark.asyncio
    async def test_retarget(self):
        engine = FakeEngine()
        engine.balances.update({"w1": 1, "w2": 2})
        tracker = BalanceTracker(engine, interval_s=10)
        tracker.retarget("w1")
        await tracker.refresh()
        tracker.retarget("w2")
        assert tracker.latest() is None
        await tracker.refresh()
        assert tracker.latest("w2").amount == 2
        assert tracker.latest("w1") is None

    @pytest.mark.asyncio
    async def test_refresh_without_wallet(self):
        with pytest.raises(RuntimeError):
            await BalanceTracker(FakeEngine()).refresh()

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self):
        await BalanceTracker(FakeEngine()).stop()
