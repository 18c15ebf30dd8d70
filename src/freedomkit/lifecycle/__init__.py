# FreedomKit Sidecar -- Lifecycle
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Lifecycle: engine storage, bootstrap, balance tracking and publisher hosting."""

from __future__ import annotations
