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
"""Egress audit logger.

Every denied connection attempt, and every attempt made through the
guard's own transports, is appended to a JSON Lines file so operators
can see exactly what the embedded applications tried to reach.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TextIO

logger = logging.getLogger("freedomkit.security.egress.audit")


@dataclass
class AuditEntry:
    """A single auditable connection attempt."""

    timestamp: float
    event_type: str  # "allowed" or "blocked"
    target: str  # Target as supplied by the caller
    hostname: str
    port: int = 0
    via: str = ""  # "hook", "socket", "transport"
    reason: str = ""

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def blocked(cls, target: str, hostname: str, port: int, via: str, reason: str) -> AuditEntry:
        return cls(
            timestamp=time.time(),
            event_type="blocked",
            target=target,
            hostname=hostname,
            port=port,
            via=via,
            reason=reason,
        )

    @classmethod
    def allowed(cls, target: str, hostname: str, port: int, via: str) -> AuditEntry:
        return cls(
            timestamp=time.time(),
            event_type="allowed",
            target=target,
            hostname=hostname,
            port=port,
            via=via,
        )


class AuditLogger:
    """Thread-safe audit logger that writes JSON Lines to a file."""

    def __init__(self, log_path: str | Path | None = None) -> None:
        if log_path is None:
            from freedomkit.config import FREEDOMKIT_HOME

            log_path = FREEDOMKIT_HOME / "egress_audit.log"

        self._path = Path(log_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file: TextIO | None = None
        self._entry_count = 0
        self._blocked_count = 0

    def _ensure_open(self) -> TextIO:
        """Lazily open the log file."""
        if self._file is None or self._file.closed:
            self._file = open(self._path, "a", encoding="utf-8")
        return self._file

    def log(self, entry: AuditEntry) -> None:
        """Write an audit entry to the log file (thread-safe)."""
        line = entry.to_json() + "\n"
        with self._lock:
            try:
                f = self._ensure_open()
                f.write(line)
                f.flush()
                self._entry_count += 1
                if entry.event_type == "blocked":
                    self._blocked_count += 1
            except OSError as exc:
                logger.error("Failed to write audit entry: %s", exc)

    def close(self) -> None:
        with self._lock:
            if self._file and not self._file.closed:
                self._file.close()
                self._file = None

    @property
    def entry_count(self) -> int:
        """Number of entries written in this process."""
        return self._entry_count

    @property
    def blocked_count(self) -> int:
        return self._blocked_count

    @property
    def path(self) -> Path:
        return self._path

    def read_recent(self, n: int = 50) -> list[AuditEntry]:
        """Read the N most recent audit entries."""
        if not self._path.exists():
            return []

        entries: list[AuditEntry] = []
        try:
            lines = self._path.read_text(encoding="utf-8").strip().splitlines()
            for line in lines[-n:]:
                try:
                    entries.append(AuditEntry(**json.loads(line)))
                except (json.JSONDecodeError, TypeError):
                    continue
        except OSError as exc:
            logger.error("Failed to read audit log: %s", exc)

        return entries

    def get_stats(self) -> dict:
        """Summary statistics over the most recent entries."""
        entries = self.read_recent(1000)
        blocked = [e for e in entries if e.event_type == "blocked"]
        return {
            "total": len(entries),
            "blocked": len(blocked),
            "allowed": len(entries) - len(blocked),
            "blocked_hosts": len({e.hostname for e in blocked}),
        }

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
