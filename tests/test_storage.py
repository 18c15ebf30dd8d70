# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the engine database and artifact store."""

import pytest

from freedomkit.lifecycle.storage import ArtifactStore, EngineDatabase


class TestEngineDatabase:
    @pytest.fixture
    def db(self, tmp_path):
        return EngineDatabase(tmp_path / "wallets" / "engine.db")

    def test_creates_file(self, db):
        assert db.db_path.exists()
        assert db.is_operational()

    def test_put_get(self, db):
        db.put("wallet:1", {"address": "0zk1", "n": 3})
        assert db.get("wallet:1") == {"address": "0zk1", "n": 3}

    def test_get_default(self, db):
        assert db.get("missing") is None
        assert db.get("missing", 7) == 7

    def test_overwrite(self, db):
        db.put("k", 1)
        db.put("k", 2)
        assert db.get("k") == 2

    def test_delete(self, db):
        db.put("k", 1)
        assert db.delete("k") is True
        assert db.delete("k") is False
        assert db.get("k") is None

    def test_iterate_prefix(self, db):
        db.put("wallet:b", 2)
        db.put("wallet:a", 1)
        db.put("merkle:x", 9)
        assert list(db.iterate("wallet:")) == [("wallet:a", 1), ("wallet:b", 2)]
        assert len(list(db.iterate())) == 3

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "engine.db"
        EngineDatabase(path).put("k", "v")
        assert EngineDatabase(path).get("k") == "v"

    def test_closed(self, db):
        db.close()
        assert not db.is_operational()
        with pytest.raises(RuntimeError):
            db.get("k")


class TestArtifactStore:
    @pytest.fixture
    def store(self, tmp_path):
        return ArtifactStore(tmp_path / "artifacts")

    def test_store_and_get(self, store):
        store.store("circuits/01x02.zkey", b"\x00\x01")
        assert store.exists("circuits/01x02.zkey")
        assert store.get("circuits/01x02.zkey") == b"\x00\x01"

    def test_missing(self, store):
        assert store.get("nope") is None
        assert not store.exists("nope")

    @pytest.mark.parametrize("name", ["../escape", "a/../../escape", ""])
    def test_rejects_escape(self, store, name):
        with pytest.raises(ValueError):
            store.store(name, b"x")
