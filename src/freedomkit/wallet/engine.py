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
"""Embedded wallet engine contract.

The privacy wallet engine is a third-party component. The sidecar only
talks to it through the ``WalletEngine`` protocol below; a concrete engine
is selected at runtime from a ``"package.module:attr"`` factory path.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from freedomkit.lifecycle.storage import ArtifactStore, EngineDatabase
    from freedomkit.security.egress import EgressGuard

logger = logging.getLogger("freedomkit.wallet.engine")


@dataclass
class EngineContext:
    """Everything the engine is given at bootstrap.

    ``guard`` is the only way the engine may reach the network.
    """

    data_dir: Path
    db: EngineDatabase
    artifacts: ArtifactStore
    network: str
    guard: EgressGuard
    allowed_endpoints: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FeeTable:
    network: str
    fees: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineWallet:
    id: str
    address: str


@runtime_checkable
class WalletEngine(Protocol):
    """Protocol satisfied by any embedded wallet engine."""

    async def init_engine(self, context: EngineContext) -> FeeTable:
        """Open storage, select the network and load the fee table."""
        ...

    async def create_wallet(self, encryption_key: str, mnemonic: str) -> EngineWallet: ...

    async def load_wallet(self, encryption_key: str, wallet_id: str) -> EngineWallet: ...

    async def get_shareable_viewing_key(self, wallet_id: str) -> str: ...

    async def get_spendable_balance(self, wallet_id: str) -> int:
        """Spendable balance in base units."""
        ...

    async def shutdown(self) -> None: ...


def resolve_entry_point(path: str) -> Any:
    """Import ``"package.module:attr"`` and return the attribute.

    Raises:
        ValueError: malformed path.
        ImportError / AttributeError: the target does not exist.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Entry point must look like 'package.module:attr', got {path!r}")
    module = importlib.import_module(module_name)
    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part)
    return target


def load_engine(factory_path: str) -> WalletEngine:
    """Instantiate the engine named by a factory path."""
    factory = resolve_entry_point(factory_path)
    engine = factory() if callable(factory) else factory
    if not isinstance(engine, WalletEngine):
        raise TypeError(f"{factory_path} did not produce a WalletEngine")
    logger.info("Loaded wallet engine %s from %s", type(engine).__name__, factory_path)
    return engine
