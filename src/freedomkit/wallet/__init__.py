# FreedomKit Sidecar -- Wallet
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Wallet: engine contract, in-memory session and the create/unlock flows."""

from __future__ import annotations
