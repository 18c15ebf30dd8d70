# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the egress audit logger."""

import json
import threading
import time

from freedomkit.security.egress.audit import AuditEntry, AuditLogger


class TestAuditEntry:
    def test_blocked_entry(self):
        entry = AuditEntry.blocked("example.com:443", "example.com", 443, "hook", "destination is not local")
        assert entry.event_type == "blocked"
        assert entry.hostname == "example.com"
        assert entry.port == 443
        assert entry.via == "hook"
        assert entry.reason == "destination is not local"

    def test_allowed_entry(self):
        entry = AuditEntry.allowed("http://127.0.0.1:2368/", "127.0.0.1", 2368, "transport")
        assert entry.event_type == "allowed"
        assert entry.reason == ""

    def test_to_json(self):
        data = json.loads(AuditEntry.blocked("a", "a", 0, "socket", "r").to_json())
        assert data["event_type"] == "blocked"
        assert data["target"] == "a"

    def test_timestamp_is_recent(self):
        before = time.time()
        entry = AuditEntry.blocked("a", "a", 0, "socket", "r")
        assert before <= entry.timestamp <= time.time()


class TestAuditLogger:
    def test_writes_json_lines(self, tmp_path):
        log_path = tmp_path / "audit.log"
        with AuditLogger(log_path) as logger:
            logger.log(AuditEntry.blocked("a.com", "a.com", 0, "hook", "r"))
            logger.log(AuditEntry.allowed("localhost", "localhost", 0, "socket"))

        lines = log_path.read_text().strip().splitlines()
        assert len(lines) == 2
        for line in lines:
            assert "event_type" in json.loads(line)

    def test_counts(self, tmp_path):
        with AuditLogger(tmp_path / "audit.log") as logger:
            logger.log(AuditEntry.blocked("a.com", "a.com", 0, "hook", "r"))
            logger.log(AuditEntry.allowed("localhost", "localhost", 0, "socket"))
            assert logger.entry_count == 2
            assert logger.blocked_count == 1

    def test_read_recent(self, tmp_path):
        log_path = tmp_path / "audit.log"
        with AuditLogger(log_path) as logger:
            for i in range(10):
                logger.log(AuditEntry.blocked(f"h{i}", f"h{i}", 0, "hook", "r"))

        with AuditLogger(log_path) as reader:
            recent = reader.read_recent(5)
        assert len(recent) == 5
        assert recent[-1].hostname == "h9"

    def test_read_recent_skips_garbage(self, tmp_path):
        log_path = tmp_path / "audit.log"
        log_path.write_text('not json\n{"unexpected": 1}\n')
        with AuditLogger(log_path) as logger:
            logger.log(AuditEntry.blocked("a", "a", 0, "hook", "r"))
            assert [e.hostname for e in logger.read_recent()] == ["a"]

    def test_read_recent_missing_file(self, tmp_path):
        with AuditLogger(tmp_path / "audit.log") as reader:
            assert reader.read_recent() == []

    def test_get_stats(self, tmp_path):
        with AuditLogger(tmp_path / "audit.log") as logger:
            logger.log(AuditEntry.blocked("a", "a.com", 0, "hook", "r"))
            logger.log(AuditEntry.blocked("a", "a.com", 0, "hook", "r"))
            logger.log(AuditEntry.blocked("b", "b.com", 0, "hook", "r"))
            logger.log(AuditEntry.allowed("l", "localhost", 0, "transport"))
            stats = logger.get_stats()
        assert stats == {"total": 4, "blocked": 3, "allowed": 1, "blocked_hosts": 2}

    def test_creates_parent_dirs(self, tmp_path):
        log_path = tmp_path / "nested" / "dir" / "audit.log"
        with AuditLogger(log_path) as logger:
            logger.log(AuditEntry.blocked("a", "a", 0, "hook", "r"))
        assert log_path.exists()

    def test_thread_safe(self, tmp_path):
        log_path = tmp_path / "audit.log"
        with AuditLogger(log_path) as logger:

            def _write(n):
                for i in range(50):
                    logger.log(AuditEntry.blocked(f"{n}-{i}", "x", 0, "hook", "r"))

            threads = [threading.Thread(target=_write, args=(n,)) for n in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        assert len(log_path.read_text().splitlines()) == 200
