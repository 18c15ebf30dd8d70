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
"""FreedomKit -- Health Route."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from freedomkit import __version__
from freedomkit.api._shared import get_sidecar
from freedomkit.runtime import Sidecar

router = APIRouter()


@router.get("/health")
async def health_check(sidecar: Sidecar = Depends(get_sidecar)):
    """Liveness plus engine, session and egress status."""
    coordinator = sidecar.coordinator
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "engine": coordinator.state.value,
        "readiness": coordinator.readiness.to_dict(),
        "wallet_unlocked": sidecar.sessions.is_unlocked(),
        "egress": sidecar.audit.get_stats(),
    }
