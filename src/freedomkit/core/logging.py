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
"""
FreedomKit -- Live Sidecar Logger

Every significant event in the sidecar's lifecycle is written to a
rotating log file that operators can tail.

LOG LOCATION:
    ~/.freedomkit/logs/sidecar.log        (current)
    ~/.freedomkit/logs/sidecar.log.1      (previous rotation)

RULES:
    - Single log file, max 10 MB before rotation
    - Human-readable format with structured fields
    - Passwords, mnemonics and derived keys are NEVER passed to this logger

USAGE:
    from freedomkit.core.logging import get_logger
    log = get_logger()
    log.info("Engine", "Bootstrap complete", network="Ethereum_Sepolia")
    log.egress("blocked", target="example.com:443")
    log.vault("unlock", success=False)
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path

# =============================================================================
# CONSTANTS
# =============================================================================

MAX_LOG_FILE_BYTES = 10 * 1024 * 1024  # 10 MB per file
LOG_BACKUP_COUNT = 20
LOG_FILE_NAME = "sidecar.log"
DEFAULT_LOG_DIR = Path.home() / ".freedomkit" / "logs"


# =============================================================================
# CUSTOM FORMATTER -- human-readable + structured
# =============================================================================


class SidecarLogFormatter(logging.Formatter):
    """
    Format: TIMESTAMP | LEVEL | COMPONENT | MESSAGE | {structured fields}

    Example:
    2026-02-09T17:30:45.123Z | EGRS  | Egress       | Egress blocked | target="example.com:443"
    2026-02-09T17:30:46.500Z | INFO  | Engine       | Bootstrap complete | network="Ethereum_Sepolia"
    """

    LEVEL_WIDTH = 5
    COMPONENT_WIDTH = 12

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        ts = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

        level = getattr(record, "sidecar_level", record.levelname)
        component = getattr(record, "component", record.name.rsplit(".", 1)[-1])
        message = record.getMessage()

        fields = getattr(record, "fields", {})
        field_str = ""
        if fields:
            parts = []
            for k, v in fields.items():
                if isinstance(v, str):
                    parts.append(f'{k}="{v}"')
                elif isinstance(v, float):
                    parts.append(f"{k}={v:.3f}")
                else:
                    parts.append(f"{k}={v}")
            field_str = " | " + " ".join(parts)

        line = (
            f"{ts} | {level:<{self.LEVEL_WIDTH}} | "
            f"{component:<{self.COMPONENT_WIDTH}} | {message}{field_str}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        str(log_dir / LOG_FILE_NAME),
        maxBytes=MAX_LOG_FILE_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(SidecarLogFormatter())
    return handler


def configure_logging(log_dir: str | Path | None = None, level: str = "INFO") -> None:
    """Route the ``freedomkit.*`` module loggers to the sidecar log file.

    This is the only place a file handler is attached; ``SidecarLogger``
    propagates into it. Safe to call more than once; previously attached
    handlers are closed and replaced.
    """
    root = logging.getLogger("freedomkit")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()

    file_handler = _file_handler(Path(log_dir) if log_dir else DEFAULT_LOG_DIR)
    file_handler.setLevel(logging.DEBUG)
    root.addHandler(file_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(SidecarLogFormatter())
    root.addHandler(stderr_handler)


# =============================================================================
# SIDECAR LOGGER
# =============================================================================


class SidecarLogger:
    """
    Component-tagged event logger for the sidecar.

    Records propagate to the `freedomkit` handlers installed by
    ``configure_logging()`` (configured on first use if nothing else did).
    """

    def __init__(self, log_dir: str | Path | None = None):
        self._log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR

        if not logging.getLogger("freedomkit").handlers:
            configure_logging(self._log_dir)

        self._logger = logging.getLogger("freedomkit.live")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = True
        self._logger.handlers.clear()

        self._session_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        self._request_count = 0

        self.info("System", "Logger initialized", log_file=self.log_file, session=self._session_id)

    def _log(self, level: int, sidecar_level: str, component: str, message: str, **fields):
        """Core log method."""
        fields["session"] = self._session_id
        record = self._logger.makeRecord(
            name="freedomkit.live",
            level=level,
            fn="",
            lno=0,
            msg=message,
            args=(),
            exc_info=None,
        )
        record.component = component
        record.sidecar_level = sidecar_level
        record.fields = fields
        self._logger.handle(record)

    # =========================================================================
    # PUBLIC API -- Standard levels
    # =========================================================================

    def info(self, component: str, message: str, **fields):
        self._log(logging.INFO, "INFO", component, message, **fields)

    # =========================================================================
    # PUBLIC API -- Domain-specific log methods
    # =========================================================================

    def egress(self, action: str, target: str = "", allowed: bool = False, **fields):
        """Log an egress guard decision."""
        fields.update(action=action, target=target, allowed=allowed)
        level = logging.INFO if allowed else logging.WARNING
        self._log(level, "EGRS", "Egress", f"Egress {action}", **fields)

    def vault(self, action: str, success: bool = True, **fields):
        """Log a vault operation. Never pass secrets here."""
        fields.update(action=action, success=success)
        level = logging.INFO if success else logging.WARNING
        self._log(level, "VAULT", "Vault", f"Vault {action}", **fields)

    def engine(self, phase: str, success: bool = True, **fields):
        """Log an engine lifecycle transition."""
        fields.update(phase=phase, success=success)
        level = logging.INFO if success else logging.ERROR
        self._log(level, "ENGN", "Engine", f"Engine {phase}", **fields)

    def wallet(self, action: str, address: str = "", success: bool = True, **fields):
        """Log a wallet session event."""
        fields.update(action=action, address=address, success=success)
        level = logging.INFO if success else logging.WARNING
        self._log(level, "WLLT", "Wallet", f"Wallet {action}", **fields)

    def server_start(self, host: str = "", port: int = 0, **fields):
        fields.update(host=host, port=port)
        self._log(logging.INFO, "BOOT", "Server", "API server started", **fields)

    def server_stop(self, **fields):
        fields.update(requests_served=self._request_count)
        self._log(logging.INFO, "HALT", "Server", "API server stopped", **fields)

    def http_request(
        self, method: str, path: str, status: int = 200, latency_ms: int = 0, **fields
    ):
        """Log an HTTP request."""
        fields.update(method=method, path=path, status=status, latency_ms=latency_ms)
        level = logging.INFO if status < 400 else logging.WARNING
        self._log(level, "HTTP", "Server", f"{method} {path} -> {status}", **fields)
        self._request_count += 1

    # =========================================================================
    # UTILITY
    # =========================================================================

    @property
    def log_file(self) -> str:
        return str(self._log_dir / LOG_FILE_NAME)


# =============================================================================
# SINGLETON
# =============================================================================

_logger_instance: SidecarLogger | None = None


def get_logger(log_dir: str | Path | None = None) -> SidecarLogger:
    """Get or create the global SidecarLogger singleton.

    Args:
        log_dir: Log directory used on first call (default ~/.freedomkit/logs).
    """
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = SidecarLogger(log_dir=log_dir)
    return _logger_instance


def reset_logger() -> None:
    """Drop the singleton (for testing only)."""
    global _logger_instance
    _logger_instance = None
