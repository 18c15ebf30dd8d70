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
"""Sidecar configuration schema.

Config location: $FREEDOMKIT_HOME/sidecar.yaml  (default ~/.freedomkit)

A missing file yields the defaults. A broken file is logged and also
yields the defaults: the sidecar never starts with a half-parsed config.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("freedomkit.config")

# ---------------------------------------------------------------------------
# Default paths
# ---------------------------------------------------------------------------
FREEDOMKIT_HOME = Path(os.environ.get("FREEDOMKIT_HOME", Path.home() / ".freedomkit"))
DEFAULT_CONFIG_PATH = FREEDOMKIT_HOME / "sidecar.yaml"

# Addresses the local API may bind to / accept clients from
LOOPBACK_HOSTS: frozenset[str] = frozenset({"127.0.0.1", "::1", "localhost"})

# PBKDF2 work factor bounds for vault records
MIN_KDF_ITERATIONS = 100_000
MAX_KDF_ITERATIONS = 10_000_000


@dataclass
class ApiConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    trusted_clients: list[str] = field(default_factory=lambda: sorted(LOOPBACK_HOSTS))
    rate_limit_rpm: int = 120
    rate_limit_burst: int = 20


@dataclass
class VaultConfig:
    path: str = str(FREEDOMKIT_HOME / "wallet.enc")
    kdf_iterations: int = 600_000  # OWASP 2024 recommendation for PBKDF2-SHA256
    io_timeout_s: float = 10.0


@dataclass
class EngineConfig:
    factory: str = ""  # "package.module:callable" returning a WalletEngine
    data_dir: str = str(FREEDOMKIT_HOME / "engine")
    network: str = "Ethereum_Sepolia"
    allowed_endpoints: list[str] = field(default_factory=list)
    bootstrap_timeout_s: float = 120.0
    call_timeout_s: float = 60.0
    balance_poll_interval_s: float = 30.0


@dataclass
class TransportConfig:
    # Local entry point of the anonymity network; remote traffic goes via this proxy only
    proxy_url: str = "socks5://127.0.0.1:9050"


@dataclass
class PublisherConfig:
    bundle_dir: str = ""
    data_dir: str = str(FREEDOMKIT_HOME / "publisher")
    config_file: str = "config.production.json"
    boot: str = ""  # "package.module:callable"


@dataclass
class LoggingConfig:
    dir: str = str(FREEDOMKIT_HOME / "logs")
    level: str = "INFO"


@dataclass
class SidecarConfig:
    """Full sidecar configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    publisher: PublisherConfig = field(default_factory=PublisherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    audit_log_path: str = str(FREEDOMKIT_HOME / "egress_audit.log")

    def to_dict(self) -> dict[str, Any]:
        return {
            "api": {
                "host": self.api.host,
                "port": self.api.port,
                "trusted_clients": list(self.api.trusted_clients),
                "rate_limit_rpm": self.api.rate_limit_rpm,
                "rate_limit_burst": self.api.rate_limit_burst,
            },
            "vault": {
                "path": self.vault.path,
                "kdf_iterations": self.vault.kdf_iterations,
                "io_timeout_s": self.vault.io_timeout_s,
            },
            "engine": {
                "factory": self.engine.factory,
                "data_dir": self.engine.data_dir,
                "network": self.engine.network,
                "allowed_endpoints": list(self.engine.allowed_endpoints),
                "bootstrap_timeout_s": self.engine.bootstrap_timeout_s,
                "call_timeout_s": self.engine.call_timeout_s,
                "balance_poll_interval_s": self.engine.balance_poll_interval_s,
            },
            "transport": {"proxy_url": self.transport.proxy_url},
            "publisher": {
                "bundle_dir": self.publisher.bundle_dir,
                "data_dir": self.publisher.data_dir,
                "config_file": self.publisher.config_file,
                "boot": self.publisher.boot,
            },
            "logging": {"dir": self.logging.dir, "level": self.logging.level},
            "audit_log_path": self.audit_log_path,
        }


def load_config(path: Path | str | None = None) -> SidecarConfig:
    """Load sidecar configuration from a YAML file.

    If the file does not exist, returns the default config.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.info("No sidecar config at %s -- using defaults", config_path)
        return SidecarConfig()

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        if raw is None:
            return SidecarConfig()
        if not isinstance(raw, dict):
            logger.warning("Invalid sidecar config (not a mapping) -- using defaults")
            return SidecarConfig()
        return _parse_config(raw)
    except Exception as exc:
        logger.error("Failed to load sidecar config: %s -- using defaults", exc)
        return SidecarConfig()


def save_config(config: SidecarConfig, path: Path | str | None = None) -> None:
    """Save sidecar configuration to a YAML file."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False), encoding="utf-8"
    )
    logger.info("Saved sidecar config to %s", config_path)


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    return value if isinstance(value, dict) else {}


def _parse_config(raw: dict) -> SidecarConfig:
    """Parse raw YAML dict into SidecarConfig."""
    defaults = SidecarConfig()

    api_raw = _section(raw, "api")
    host = str(api_raw.get("host", defaults.api.host))
    if host not in LOOPBACK_HOSTS:
        logger.error("API host %r is not a loopback address -- binding 127.0.0.1 instead", host)
        host = "127.0.0.1"
    trusted = api_raw.get("trusted_clients", defaults.api.trusted_clients)
    if not isinstance(trusted, list):
        trusted = defaults.api.trusted_clients
    api = ApiConfig(
        host=host,
        port=int(api_raw.get("port", defaults.api.port)),
        trusted_clients=[str(t) for t in trusted],
        rate_limit_rpm=int(api_raw.get("rate_limit_rpm", defaults.api.rate_limit_rpm)),
        rate_limit_burst=int(api_raw.get("rate_limit_burst", defaults.api.rate_limit_burst)),
    )

    vault_raw = _section(raw, "vault")
    iterations = int(vault_raw.get("kdf_iterations", defaults.vault.kdf_iterations))
    if iterations < MIN_KDF_ITERATIONS:
        logger.warning(
            "vault.kdf_iterations=%d is below the minimum -- using %d",
            iterations,
            MIN_KDF_ITERATIONS,
        )
        iterations = MIN_KDF_ITERATIONS
    elif iterations > MAX_KDF_ITERATIONS:
        logger.warning(
            "vault.kdf_iterations=%d is above the maximum -- using %d",
            iterations,
            MAX_KDF_ITERATIONS,
        )
        iterations = MAX_KDF_ITERATIONS
    vault = VaultConfig(
        path=str(vault_raw.get("path", defaults.vault.path)),
        kdf_iterations=iterations,
        io_timeout_s=float(vault_raw.get("io_timeout_s", defaults.vault.io_timeout_s)),
    )

    engine_raw = _section(raw, "engine")
    endpoints = engine_raw.get("allowed_endpoints", [])
    if not isinstance(endpoints, list):
        endpoints = []
    engine = EngineConfig(
        factory=str(engine_raw.get("factory", "")),
        data_dir=str(engine_raw.get("data_dir", defaults.engine.data_dir)),
        network=str(engine_raw.get("network", defaults.engine.network)),
        allowed_endpoints=[str(e) for e in endpoints if str(e).strip()],
        bootstrap_timeout_s=float(
            engine_raw.get("bootstrap_timeout_s", defaults.engine.bootstrap_timeout_s)
        ),
        call_timeout_s=float(engine_raw.get("call_timeout_s", defaults.engine.call_timeout_s)),
        balance_poll_interval_s=float(
            engine_raw.get("balance_poll_interval_s", defaults.engine.balance_poll_interval_s)
        ),
    )

    transport = TransportConfig(
        proxy_url=str(_section(raw, "transport").get("proxy_url", defaults.transport.proxy_url))
    )

    publisher_raw = _section(raw, "publisher")
    publisher = PublisherConfig(
        bundle_dir=str(publisher_raw.get("bundle_dir", "")),
        data_dir=str(publisher_raw.get("data_dir", defaults.publisher.data_dir)),
        config_file=str(publisher_raw.get("config_file", defaults.publisher.config_file)),
        boot=str(publisher_raw.get("boot", "")),
    )

    logging_raw = _section(raw, "logging")
    log_cfg = LoggingConfig(
        dir=str(logging_raw.get("dir", defaults.logging.dir)),
        level=str(logging_raw.get("level", defaults.logging.level)).upper(),
    )

    return SidecarConfig(
        api=api,
        vault=vault,
        engine=engine,
        transport=transport,
        publisher=publisher,
        logging=log_cfg,
        audit_log_path=str(raw.get("audit_log_path", defaults.audit_log_path)),
    )
