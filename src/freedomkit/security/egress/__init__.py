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
"""FreedomKit egress guard.

In-process network isolation for the sidecar and everything embedded in
it. Only provably local destinations are reachable; remote traffic can
leave solely through the anonymity transport's local proxy.

Security properties:
  - Default DENY: anything that is not a local literal host is blocked
  - Fail closed: empty or unparseable destinations are blocked
  - No DNS: decisions are made on the literal host string only
  - No caching: every attempt is evaluated independently
  - Audit trail: blocked attempts are written to a JSON Lines log
"""

from .audit import AuditEntry, AuditLogger
from .guard import EgressGuard
from .policy import DEFAULT_POLICY, AllowPolicy, Decision, Destination

__all__ = [
    "AllowPolicy",
    "AuditEntry",
    "AuditLogger",
    "DEFAULT_POLICY",
    "Decision",
    "Destination",
    "EgressGuard",
]
