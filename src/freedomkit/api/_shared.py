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
FreedomKit -- Shared API Utilities

Request models and the dependency that hands routes the running sidecar.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import Request
from pydantic import BaseModel

if TYPE_CHECKING:
    from freedomkit.runtime import Sidecar


def get_sidecar(request: Request) -> Sidecar:
    return request.app.state.sidecar


# =============================================================================
# REQUEST MODELS
# =============================================================================
# Fields default to "" so a missing password surfaces as the service's own
# 400 message instead of a schema error.


class PasswordRequest(BaseModel):
    password: Any = ""


class ChangePasswordRequest(BaseModel):
    current_password: Any = ""
    new_password: Any = ""
