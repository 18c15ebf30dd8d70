# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the sidecar log formatter and component logger."""

import logging

import pytest

from freedomkit.core.logging import (
    SidecarLogFormatter,
    SidecarLogger,
    configure_logging,
    get_logger,
    reset_logger,
)


def _drop_handlers():
    root = logging.getLogger("freedomkit")
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()


@pytest.fixture(autouse=True)
def _fresh_logger():
    reset_logger()
    _drop_handlers()
    yield
    reset_logger()
    _drop_handlers()


def _file_handlers():
    found = []
    for name in ("freedomkit", "freedomkit.live"):
        found += [h for h in logging.getLogger(name).handlers if isinstance(h, logging.FileHandler)]
    return found


def _read(log):
    for handler in logging.getLogger("freedomkit").handlers:
        handler.flush()
    with open(log.log_file, encoding="utf-8") as f:
        return f.read()


class TestFormatter:
    def test_structured_fields(self):
        record = logging.LogRecord("freedomkit.live", logging.INFO, "", 0, "hello", (), None)
        record.component = "Engine"
        record.sidecar_level = "ENGN"
        record.fields = {"network": "Ethereum", "ratio": 0.5, "count": 3}
        line = SidecarLogFormatter().format(record)
        parts = line.split(" | ")
        assert parts[1].strip() == "ENGN"
        assert parts[2].strip() == "Engine"
        assert parts[3] == "hello"
        assert parts[4] == 'network="Ethereum" ratio=0.500 count=3'

    def test_plain_record_uses_module_name(self):
        record = logging.LogRecord("freedomkit.wallet.service", logging.WARNING, "", 0, "x %s", ("y",), None)
        line = SidecarLogFormatter().format(record)
        assert "| WARNING | service" in line
        assert line.endswith("x y")


class TestSidecarLogger:
    def test_writes_log_file(self, tmp_path):
        log = SidecarLogger(tmp_path)
        log.egress("blocked", target="example.com:443")
        log.vault("unlock", success=False)
        text = _read(log)
        assert "Logger initialized" in text
        assert "Egress blocked" in text
        assert 'target="example.com:443"' in text
        assert "Vault unlock" in text
        assert "success=False" in text

    def test_request_count(self, tmp_path):
        log = SidecarLogger(tmp_path)
        log.http_request("GET", "/wallet/exists", status=200, latency_ms=3)
        log.http_request("POST", "/wallet/unlock", status=401)
        log.server_stop()
        assert "requests_served=2" in _read(log)

    def test_singleton(self, tmp_path):
        first = get_logger(tmp_path)
        assert get_logger(tmp_path / "other") is first
        reset_logger()
        assert get_logger(tmp_path) is not first


class TestConfigureLogging:
    def test_module_loggers_reach_file(self, tmp_path):
        configure_logging(tmp_path, "DEBUG")
        logging.getLogger("freedomkit.vault").debug("debug line")
        for handler in logging.getLogger("freedomkit").handlers:
            handler.flush()
        text = (tmp_path / "sidecar.log").read_text(encoding="utf-8")
        assert "debug line" in text

    def test_reconfigure_replaces_handlers(self, tmp_path):
        configure_logging(tmp_path)
        configure_logging(tmp_path)
        assert len(logging.getLogger("freedomkit").handlers) == 2

    def test_logger_shares_configured_file_handler(self, tmp_path):
        configure_logging(tmp_path)
        log = get_logger(tmp_path)
        handlers = _file_handlers()
        assert len(handlers) == 1
        assert handlers[0].baseFilename == log.log_file
        log.wallet("unlock", address="0zkabc")
        logging.getLogger("freedomkit.wallet.service").info("module line")
        text = _read(log)
        assert "Wallet unlock" in text
        assert "module line" in text

    def test_logger_configures_when_unset(self, tmp_path):
        SidecarLogger(tmp_path)
        assert [h.baseFilename for h in _file_handlers()] == [str(tmp_path / "sidecar.log")]
