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
"""Sidecar CLI entry point.

Usage:
    freedomkit-sidecar [--config PATH] [--port PORT] [--log-level LEVEL]
    python -m freedomkit [...]
"""

from __future__ import annotations

import argparse
import logging
import sys

from freedomkit import __version__
from freedomkit.config import load_config

logger = logging.getLogger("freedomkit.cli.app")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="freedomkit-sidecar",
        description="FreedomKit Sidecar -- local-only wallet and privacy host",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to sidecar.yaml (default: ~/.freedomkit/sidecar.yaml)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="API listen port on the loopback address (overrides config, default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config, default: INFO)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the sidecar process."""
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.port is not None:
        config.api.port = args.port
    if args.log_level is not None:
        config.logging.level = args.log_level

    # Imported here so --help / --version never load the server stack
    from freedomkit.runtime import run

    return run(config)


if __name__ == "__main__":
    sys.exit(main())
