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
"""In-memory wallet session.

Holds the currently authenticated wallet, if any. Nothing here is ever
persisted; process exit or ``clear()`` destroys it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from freedomkit.errors import WalletLocked


@dataclass(frozen=True)
class WalletSession:
    engine_wallet_id: str
    public_address: str
    viewing_key: str
    opened_at: float = field(default_factory=time.time)


class WalletSessionStore:
    """At most one session at a time; a new session replaces the old one."""

    def __init__(self) -> None:
        self._session: WalletSession | None = None
        self._lock = threading.Lock()

    def open(self, engine_wallet_id: str, public_address: str, viewing_key: str) -> WalletSession:
        session = WalletSession(engine_wallet_id, public_address, viewing_key)
        with self._lock:
            self._session = session
        return session

    def clear(self) -> bool:
        """Drop the session. Returns True if one was open."""
        with self._lock:
            was_open = self._session is not None
            self._session = None
        return was_open

    def is_unlocked(self) -> bool:
        return self._session is not None

    def current(self) -> WalletSession:
        session = self._session
        if session is None:
            raise WalletLocked()
        return session

    def current_address(self) -> str:
        return self.current().public_address

    def current_engine_id(self) -> str:
        return self.current().engine_wallet_id

    def viewing_key(self) -> str:
        return self.current().viewing_key
