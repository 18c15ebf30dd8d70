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
"""Egress guard -- the sidecar's network isolation layer.

Two ways in, one decision:

  1. Injected connectors. Components that the sidecar constructs (the
     wallet engine, the balance tracker, anything else network-capable)
     are handed a guard and open connections only through
     ``create_connection()``, ``transport()`` / ``client()`` or the
     ``request()`` / ``get()`` convenience wrappers.

  2. Process-wide hook. Code the sidecar does not control (the embedded
     publishing application and its dependencies) is covered by
     ``install()``, which registers a ``sys.addaudithook`` hook on the
     interpreter's socket events (connect, sendto, sendmsg, getaddrinfo,
     gethostbyname, gethostbyaddr). Raising from the hook aborts the call
     before the syscall is made.

Both paths normalize the target to a ``Destination`` and evaluate it
against the same ``AllowPolicy`` on every attempt. Denials raise
``BlockedEgress``; nothing is cached.
"""

from __future__ import annotations

import logging
import socket
import sys
import threading
from collections.abc import Mapping
from typing import Any

import httpx

from freedomkit.errors import BlockedEgress

from .audit import AuditEntry, AuditLogger
from .policy import DEFAULT_POLICY, AllowPolicy, Decision, Destination
from .transport import AsyncGuardedTransport, GuardedTransport

logger = logging.getLogger("freedomkit.security.egress.guard")

_DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "socks5": 1080,
    "socks5h": 1080,
}

# Interpreter audit events that open or address a network peer
_SOCKET_ADDRESS_EVENTS = frozenset({"socket.connect", "socket.sendto", "socket.sendmsg"})
_RESOLVER_EVENTS = frozenset({"socket.getaddrinfo", "socket.gethostbyname", "socket.gethostbyaddr"})
_SOCKET_EVENTS = _SOCKET_ADDRESS_EVENTS | _RESOLVER_EVENTS

_INET_FAMILIES = frozenset({socket.AF_INET, socket.AF_INET6})

_UPSTREAM_TIMEOUT = 30.0


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("ascii", errors="replace")
    return str(value)


def _as_port(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _from_url(url: httpx.URL, target: str) -> Destination:
    port = url.port or _DEFAULT_PORTS.get(url.scheme, 0)
    return Destination(host=url.host, port=port, target=target)


def _from_host_string(value: str) -> Destination:
    """Parse ``host``, ``host:port``, ``[v6]:port`` or a bare IPv6 literal."""
    text = value.strip()
    if text.startswith("["):
        end = text.find("]")
        if end == -1:
            return Destination(host="", port=0, target=value)
        rest = text[end + 1 :]
        port = _as_port(rest[1:]) if rest.startswith(":") else 0
        return Destination(host=text[1:end], port=port, target=value)
    if text.count(":") == 1:
        host, _, port = text.partition(":")
        return Destination(host=host, port=_as_port(port), target=value)
    return Destination(host=text, port=0, target=value)


class EgressGuard:
    """Local-only egress guard.

    Args:
        policy: Allow policy (defaults to the hardcoded local-only policy).
        audit: Optional JSON Lines audit logger.
        proxy_url: Local entry point of the anonymity transport. Remote
            requests made through the guard's httpx transports are sent via
            this proxy; the proxy address itself must pass the policy.
    """

    def __init__(
        self,
        policy: AllowPolicy | None = None,
        audit: AuditLogger | None = None,
        proxy_url: str | None = None,
    ) -> None:
        self._policy = policy or DEFAULT_POLICY
        self._audit = audit
        self._proxy_url = proxy_url or None

        if self._proxy_url and not self.permits(self._proxy_url):
            raise ValueError(f"Anonymity transport proxy must be local: {self._proxy_url}")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def policy(self) -> AllowPolicy:
        return self._policy

    @property
    def audit(self) -> AuditLogger | None:
        return self._audit

    @property
    def proxy_url(self) -> str | None:
        return self._proxy_url

    @property
    def is_installed(self) -> bool:
        return _installed_guard is self

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------
    @staticmethod
    def normalize(target: Any) -> Destination:
        """Reduce any supported call-signature variant to a Destination.

        Accepts a URL string, a ``host[:port]`` string, ``httpx.URL``,
        ``httpx.Request``, a ``urllib.parse`` result, a socket address
        tuple, or an options mapping with ``hostname``/``host`` and
        ``port`` keys.
        Anything unrecognised becomes an empty-host Destination, which the
        policy denies.
        """
        if isinstance(target, Destination):
            return target
        if isinstance(target, httpx.Request):
            return _from_url(target.url, str(target.url))
        if isinstance(target, httpx.URL):
            return _from_url(target, str(target))
        if isinstance(target, (str, bytes)):
            text = _as_text(target)
            if "://" in text:
                try:
                    return _from_url(httpx.URL(text), text)
                except (httpx.InvalidURL, ValueError):
                    return Destination(host="", port=0, target=text)
            return _from_host_string(text)
        if hasattr(target, "hostname") and hasattr(target, "geturl"):
            # urllib.parse results are tuples too, so they go first
            try:
                port = _as_port(target.port)
            except ValueError:
                port = 0
            return Destination(host=_as_text(target.hostname), port=port, target=target.geturl())
        if isinstance(target, (tuple, list)) and target:
            host = _as_text(target[0])
            port = _as_port(target[1]) if len(target) > 1 else 0
            return Destination(host=host, port=port, target=f"{host}:{port}" if port else host)
        if isinstance(target, Mapping):
            host = _as_text(target.get("hostname") or target.get("host"))
            destination = _from_host_string(host)
            port = _as_port(target.get("port")) or destination.port
            return Destination(host=destination.host, port=port, target=host)
        return Destination(host="", port=0, target=repr(target))

    def evaluate(self, destination: Destination) -> Decision:
        """Pure policy decision for one destination."""
        return self._policy.evaluate(destination)

    def permits(self, target: Any) -> bool:
        """True if the target would be allowed. Does not audit."""
        return self.evaluate(self.normalize(target)) is Decision.ALLOWED

    def check(self, target: Any, *, via: str = "socket", audit_allowed: bool = False) -> Destination:
        """Normalize and evaluate a target; raise BlockedEgress on denial.

        Returns the normalized Destination when allowed.
        """
        destination = self.normalize(target)
        if self.evaluate(destination) is Decision.ALLOWED:
            if audit_allowed and self._audit is not None:
                self._audit.log(
                    AuditEntry.allowed(str(destination), destination.host, destination.port, via)
                )
            return destination

        reason = "empty destination" if not destination.host else "destination is not local"
        logger.warning("Blocked egress to %s via %s (%s)", destination, via, reason)
        if self._audit is not None:
            self._audit.log(
                AuditEntry.blocked(str(destination), destination.host, destination.port, via, reason)
            )
        raise BlockedEgress(str(destination), reason)

    # ------------------------------------------------------------------
    # Injected connectors
    # ------------------------------------------------------------------
    def create_connection(
        self,
        address: tuple[str, int],
        timeout: float | None = _UPSTREAM_TIMEOUT,
        source_address: tuple[str, int] | None = None,
    ) -> socket.socket:
        """Guarded ``socket.create_connection``."""
        self.check(address, via="socket", audit_allowed=True)
        return socket.create_connection(address, timeout=timeout, source_address=source_address)

    def transport(self, **kwargs: Any) -> GuardedTransport:
        """Build a guarded sync httpx transport (kwargs go to HTTPTransport)."""
        direct = httpx.HTTPTransport(**kwargs)
        proxied = httpx.HTTPTransport(proxy=self._proxy_url, **kwargs) if self._proxy_url else None
        return GuardedTransport(self, direct=direct, proxied=proxied)

    def async_transport(self, **kwargs: Any) -> AsyncGuardedTransport:
        """Build a guarded async httpx transport (kwargs go to AsyncHTTPTransport)."""
        direct = httpx.AsyncHTTPTransport(**kwargs)
        proxied = (
            httpx.AsyncHTTPTransport(proxy=self._proxy_url, **kwargs) if self._proxy_url else None
        )
        return AsyncGuardedTransport(self, direct=direct, proxied=proxied)

    def client(self, **kwargs: Any) -> httpx.Client:
        kwargs.setdefault("timeout", _UPSTREAM_TIMEOUT)
        return httpx.Client(transport=self.transport(), **kwargs)

    def async_client(self, **kwargs: Any) -> httpx.AsyncClient:
        kwargs.setdefault("timeout", _UPSTREAM_TIMEOUT)
        return httpx.AsyncClient(transport=self.async_transport(), **kwargs)

    def request(self, method: str, url: Any, **kwargs: Any) -> httpx.Response:
        """Issue one request through a guarded client and close it."""
        with self.client() as client:
            return client.request(method, url, **kwargs)

    def get(self, url: Any, **kwargs: Any) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    # ------------------------------------------------------------------
    # Process-wide hook
    # ------------------------------------------------------------------
    def install(self) -> None:
        """Make this guard the process-wide connection interceptor.

        Must run before any other component performs network I/O. Calling
        it again with the same guard is a no-op.
        """
        global _installed_guard, _hook_registered
        with _hook_lock:
            if _installed_guard is self:
                logger.warning("Egress guard already installed")
                return
            if _installed_guard is not None:
                raise RuntimeError("A different egress guard is already installed")
            if not _hook_registered:
                sys.addaudithook(_audit_hook)
                _hook_registered = True
            _installed_guard = self

        logger.info(
            "Egress guard installed (hosts=%s, networks=%s, transport=%s)",
            ",".join(sorted(self._policy.hostnames)),
            ",".join(str(n) for n in self._policy.networks),
            self._proxy_url or "none",
        )

    def uninstall(self) -> None:
        """Detach this guard from the process hook (for testing only).

        Audit hooks cannot be removed from a running interpreter; the hook
        stays registered and becomes a no-op.
        """
        global _installed_guard
        with _hook_lock:
            if _installed_guard is self:
                _installed_guard = None

    def _on_socket_event(self, event: str, args: tuple) -> None:
        if event in _SOCKET_ADDRESS_EVENTS:
            sock, address = args[0], args[1]
            if address is None or getattr(sock, "family", None) not in _INET_FAMILIES:
                return  # Unix sockets and already-connected sends
            self.check(address, via="hook")
        elif event == "socket.getaddrinfo":
            host, port = args[0], args[1]
            if host is None:
                return  # Passive lookup for a local bind
            self.check((_as_text(host), _as_port(port)), via="hook")
        else:
            self.check(_as_text(args[0]), via="hook")


# ---------------------------------------------------------------------------
# Audit hook plumbing
# ---------------------------------------------------------------------------
_hook_lock = threading.Lock()
_hook_registered = False
_installed_guard: EgressGuard | None = None


def _audit_hook(event: str, args: tuple) -> None:
    if event not in _SOCKET_EVENTS:
        return
    guard = _installed_guard
    if guard is not None:
        guard._on_socket_event(event, args)
