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
"""Engine storage: a local key/value database and an artifact file store.

Layout under the engine data directory:

    <data_dir>/wallets/engine.db     sqlite, one ``kv`` table of JSON values
    <data_dir>/artifacts/            proving artifacts and other blobs
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import closing
from pathlib import Path
from typing import Any

logger = logging.getLogger("freedomkit.lifecycle.storage")


class EngineDatabase:
    """JSON key/value store handed to the wallet engine."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._closed = False
        self._init_db()

    def _init_db(self):
        with closing(sqlite3.connect(self.db_path)) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()
        logger.info("Engine database ready at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        if self._closed:
            raise RuntimeError("Engine database is closed")
        return sqlite3.connect(self.db_path)

    def is_operational(self) -> bool:
        return not self._closed and self.db_path.exists()

    def get(self, key: str, default: Any = None) -> Any:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return json.loads(row[0]) if row else default

    def put(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock, closing(self._connect()) as conn:
            conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, encoded))
            conn.commit()

    def delete(self, key: str) -> bool:
        with self._lock, closing(self._connect()) as conn:
            cur = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
            return cur.rowcount > 0

    def iterate(self, prefix: str = "") -> Iterator[tuple[str, Any]]:
        """Yield (key, value) pairs whose key starts with ``prefix``, in key order."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        for key, value in rows:
            yield key, json.loads(value)

    def close(self) -> None:
        self._closed = True


class ArtifactStore:
    """Flat file store rooted at one directory. Paths may not escape the root."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, name: str) -> Path:
        path = (self.root / name).resolve()
        if path == self.root or not path.is_relative_to(self.root):
            raise ValueError(f"Artifact path escapes the store: {name!r}")
        return path

    def exists(self, name: str) -> bool:
        return self._resolve(name).is_file()

    def get(self, name: str) -> bytes | None:
        path = self._resolve(name)
        if not path.is_file():
            return None
        return path.read_bytes()

    def store(self, name: str, data: bytes) -> Path:
        path = self._resolve(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        return path
