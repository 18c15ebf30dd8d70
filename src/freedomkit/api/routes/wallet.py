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
"""Wallet API routes.

Vault and session failures are raised as SidecarError subclasses and
turned into ``{"error", "code"}`` bodies by the app's exception handlers.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from freedomkit.api._shared import ChangePasswordRequest, PasswordRequest, get_sidecar
from freedomkit.runtime import Sidecar

logger = logging.getLogger("freedomkit.api.routes.wallet")

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/exists")
async def wallet_exists(sidecar: Sidecar = Depends(get_sidecar)) -> dict:
    return {"exists": await sidecar.wallets.exists()}


@router.post("/create")
async def create_wallet(body: PasswordRequest, sidecar: Sidecar = Depends(get_sidecar)) -> dict:
    """Create the installation's wallet and open a session for it."""
    address = await sidecar.wallets.create(body.password)
    return {"address": address}


@router.post("/unlock")
async def unlock_wallet(body: PasswordRequest, sidecar: Sidecar = Depends(get_sidecar)) -> dict:
    address = await sidecar.wallets.unlock(body.password)
    return {"address": address}


@router.post("/lock")
async def lock_wallet(sidecar: Sidecar = Depends(get_sidecar)) -> dict:
    was_unlocked = sidecar.wallets.lock()
    return {"locked": True, "was_unlocked": was_unlocked}


@router.post("/password")
async def change_password(
    body: ChangePasswordRequest, sidecar: Sidecar = Depends(get_sidecar)
) -> dict:
    """Re-key the wallet under a new password."""
    address = await sidecar.wallets.change_password(body.current_password, body.new_password)
    return {"address": address}


@router.get("/address")
async def wallet_address(sidecar: Sidecar = Depends(get_sidecar)) -> dict:
    return {"address": sidecar.wallets.address()}


@router.get("/balance")
async def wallet_balance(sidecar: Sidecar = Depends(get_sidecar)) -> dict:
    """Spendable balance as a decimal string plus the raw base-unit amount."""
    snapshot = await sidecar.wallets.balance()
    return {
        "balance": snapshot.formatted(),
        "balanceWei": str(snapshot.amount),
        "updatedAt": snapshot.updated_at,
    }


@router.get("/viewing-key")
async def wallet_viewing_key(sidecar: Sidecar = Depends(get_sidecar)) -> dict:
    return {"viewingKey": sidecar.wallets.viewing_key()}
