# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for sidecar configuration loading."""

import yaml

from freedomkit.config import (
    LOOPBACK_HOSTS,
    MAX_KDF_ITERATIONS,
    MIN_KDF_ITERATIONS,
    SidecarConfig,
    load_config,
    save_config,
)


class TestDefaults:
    def test_missing_file(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config.api.host == "127.0.0.1"
        assert config.api.port == 8080
        assert set(config.api.trusted_clients) == LOOPBACK_HOSTS
        assert config.vault.kdf_iterations == 600_000
        assert config.transport.proxy_url.startswith("socks5://127.0.0.1")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text("")
        assert load_config(path).api.port == 8080

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text("- a\n- b\n")
        assert load_config(path).api.port == 8080

    def test_broken_yaml(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text("api: [unclosed\n")
        assert load_config(path).api.port == 8080


class TestParse:
    def test_values(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text(
            yaml.dump(
                {
                    "api": {"port": 9191, "rate_limit_burst": 5},
                    "engine": {
                        "factory": "mypkg.engine:create",
                        "network": "Ethereum",
                        "allowed_endpoints": ["http://127.0.0.1:8545", "  "],
                    },
                    "publisher": {"bundle_dir": "/opt/bundle", "boot": "mypkg.pub:main"},
                    "logging": {"level": "debug"},
                }
            )
        )
        config = load_config(path)
        assert config.api.port == 9191
        assert config.api.rate_limit_burst == 5
        assert config.engine.factory == "mypkg.engine:create"
        assert config.engine.network == "Ethereum"
        assert config.engine.allowed_endpoints == ["http://127.0.0.1:8545"]
        assert config.publisher.bundle_dir == "/opt/bundle"
        assert config.publisher.boot == "mypkg.pub:main"
        assert config.logging.level == "DEBUG"

    def test_non_loopback_host_replaced(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text("api:\n  host: 0.0.0.0\n")
        assert load_config(path).api.host == "127.0.0.1"

    def test_low_iterations_clamped(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text("vault:\n  kdf_iterations: 1000\n")
        assert load_config(path).vault.kdf_iterations == MIN_KDF_ITERATIONS

    def test_high_iterations_clamped(self, tmp_path):
        path = tmp_path / "sidecar.yaml"
        path.write_text("vault:\n  kdf_iterations: 4294967295\n")
        assert load_config(path).vault.kdf_iterations == MAX_KDF_ITERATIONS


class TestSave:
    def test_round_trip(self, tmp_path):
        config = SidecarConfig()
        config.api.port = 7000
        config.engine.allowed_endpoints = ["http://localhost:8545"]
        path = tmp_path / "nested" / "sidecar.yaml"
        save_config(config, path)
        assert load_config(path).to_dict() == config.to_dict()
