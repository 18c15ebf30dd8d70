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
"""Local-only egress allow policy.

The policy is a fixed, immutable allowlist: loopback/any hostnames plus
the three RFC 1918 private IPv4 ranges. Matching is purely lexical on the
literal host string -- no DNS lookups -- so a public hostname that happens
to resolve to a private address is still denied.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger("freedomkit.security.egress.policy")

# ---------------------------------------------------------------------------
# Hardcoded rules (not user-configurable)
# ---------------------------------------------------------------------------
LOCAL_HOSTNAMES: frozenset[str] = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})

PRIVATE_NETWORKS: tuple[ipaddress.IPv4Network, ...] = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)


class Decision(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class Destination:
    """A (host, port) pair taken from one outbound connection attempt."""

    host: str
    port: int = 0
    target: str = ""  # Original target as the caller supplied it, for diagnostics

    def __str__(self) -> str:
        if self.target:
            return self.target
        if ":" in self.host:
            return f"[{self.host}]:{self.port}" if self.port else self.host
        return f"{self.host}:{self.port}" if self.port else self.host


def normalize_host(host: str) -> str:
    """Lower-case the host and strip brackets or a trailing ``:port``.

    ``"LOCALHOST:2368"`` -> ``"localhost"``, ``"[::1]:80"`` -> ``"::1"``.
    A bare IPv6 literal (more than one colon) is left as is.
    """
    host = (host or "").strip().lower()
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else ""
    if host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host


@dataclass(frozen=True)
class AllowPolicy:
    """Immutable local-only allowlist.

    ``evaluate`` is a pure function: no caching, no state, safe to call
    concurrently from any thread.
    """

    hostnames: frozenset[str] = LOCAL_HOSTNAMES
    networks: tuple[ipaddress.IPv4Network, ...] = field(default=PRIVATE_NETWORKS)

    def matches(self, host: str) -> bool:
        """True if the literal host matches an exact rule or a private range."""
        hostname = normalize_host(host)
        if not hostname:
            return False
        if hostname in self.hostnames:
            return True
        try:
            address = ipaddress.ip_address(hostname)
        except ValueError:
            # Not an IP literal and not an exact rule
            return False
        if address.version != 4:
            return False
        return any(address in network for network in self.networks)

    def evaluate(self, destination: Destination) -> Decision:
        return Decision.ALLOWED if self.matches(destination.host) else Decision.DENIED

    def describe(self) -> dict:
        return {
            "hostnames": sorted(self.hostnames),
            "networks": [str(n) for n in self.networks],
        }


DEFAULT_POLICY = AllowPolicy()
