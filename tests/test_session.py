# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the in-memory wallet session."""

import pytest

from freedomkit.errors import WalletLocked
from freedomkit.wallet.session import WalletSessionStore


@pytest.fixture
def store():
    return WalletSessionStore()


def test_locked_by_default(store):
    assert store.is_unlocked() is False
    with pytest.raises(WalletLocked):
        store.current_address()
    with pytest.raises(WalletLocked):
        store.current_engine_id()
    with pytest.raises(WalletLocked):
        store.viewing_key()


def test_open(store):
    store.open("id-1", "0zkaddr", "vk-1")
    assert store.is_unlocked()
    assert store.current_address() == "0zkaddr"
    assert store.current_engine_id() == "id-1"
    assert store.viewing_key() == "vk-1"


def test_new_session_replaces_old(store):
    store.open("id-1", "addr-1", "vk-1")
    store.open("id-2", "addr-2", "vk-2")
    assert store.current_engine_id() == "id-2"


def test_clear(store):
    store.open("id-1", "addr-1", "vk-1")
    assert store.clear() is True
    assert store.clear() is False
    with pytest.raises(WalletLocked):
        store.current_address()
