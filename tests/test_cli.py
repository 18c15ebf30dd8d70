# FreedomKit Sidecar
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the sidecar command line."""

from unittest.mock import patch

import pytest

from freedomkit import __version__
from freedomkit.cli.app import build_parser, main


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.config is None
        assert args.port is None
        assert args.log_level is None

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            build_parser().parse_args(["--version"])
        assert info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestMain:
    def test_overrides_applied(self, tmp_path):
        with patch("freedomkit.runtime.run", return_value=0) as run:
            code = main(
                ["--config", str(tmp_path / "absent.yaml"), "--port", "9000", "--log-level", "DEBUG"]
            )
        assert code == 0
        config = run.call_args.args[0]
        assert config.api.port == 9000
        assert config.logging.level == "DEBUG"

    def test_exit_code_propagates(self, tmp_path):
        with patch("freedomkit.runtime.run", return_value=1):
            assert main(["--config", str(tmp_path / "absent.yaml")]) == 1
