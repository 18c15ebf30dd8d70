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
"""Sidecar error taxonomy.

Every error that can reach the local API carries an HTTP status and a
stable machine-readable code. The API layer maps them to JSON bodies of
the form ``{"error": <message>, "code": <error_code>}``.
"""

from __future__ import annotations

import errno
from typing import Any


class SidecarError(Exception):
    """Base class for all sidecar failures surfaced to callers."""

    status_code: int = 500
    error_code: str = "internal"

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self), "code": self.error_code}


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------
class VaultAlreadyExists(SidecarError):
    status_code = 409
    error_code = "vault-already-exists"

    def __init__(self, message: str = "Wallet already exists") -> None:
        super().__init__(message)


class VaultNotFound(SidecarError):
    status_code = 404
    error_code = "vault-not-found"

    def __init__(self, message: str = "No wallet found") -> None:
        super().__init__(message)


class InvalidPasswordOrCorrupted(SidecarError):
    """Wrong password and a damaged record are deliberately reported alike."""

    status_code = 401
    error_code = "invalid-password-or-corrupted"

    def __init__(self, message: str = "Invalid password or corrupted wallet file") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Session / lifecycle
# ---------------------------------------------------------------------------
class WalletLocked(SidecarError):
    status_code = 401
    error_code = "wallet-locked"

    def __init__(self, message: str = "Wallet is locked") -> None:
        super().__init__(message)


class EngineNotInitialized(SidecarError):
    status_code = 503
    error_code = "engine-not-initialized"

    def __init__(self, message: str = "Wallet engine is not initialized") -> None:
        super().__init__(message)


class EngineBootstrapError(SidecarError):
    """Engine failed to start. Fatal to the process."""

    error_code = "engine-bootstrap-failed"


class ProvisioningError(SidecarError):
    """First-run data provisioning failed. Fatal to startup."""

    error_code = "provisioning-failed"


class OperationTimeout(SidecarError):
    status_code = 504
    error_code = "timeout"


class InvalidRequest(SidecarError):
    status_code = 400
    error_code = "bad-request"


class InvalidTransitionError(ValueError):
    """Raised when the lifecycle state machine is asked for an illegal move."""


# ---------------------------------------------------------------------------
# Egress
# ---------------------------------------------------------------------------
class BlockedEgress(ConnectionError):
    """An outbound connection was denied by the egress guard.

    Subclasses ``ConnectionError`` with ``ENETUNREACH`` so code that already
    copes with unreachable networks treats a denial the same way.
    """

    status_code = 502
    error_code = "blocked-for-privacy"

    def __init__(self, target: str, reason: str = "destination is not local") -> None:
        self.target = target
        self.reason = reason
        super().__init__(
            errno.ENETUNREACH,
            f"BLOCKED: outgoing connection to {target or '<empty>'} blocked for privacy ({reason})",
        )

    def __str__(self) -> str:
        return self.strerror or super().__str__()

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self), "code": self.error_code, "target": self.target}
