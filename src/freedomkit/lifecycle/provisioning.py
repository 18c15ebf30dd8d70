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
"""Embedded publishing application host.

First run copies the bundled application data into the per-user data
directory and points the persisted paths in its configuration file at
that directory. ``boot()`` then starts the application's entry point on a
daemon thread. Both steps run after the egress guard is installed.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any

from freedomkit.config import PublisherConfig
from freedomkit.errors import ProvisioningError
from freedomkit.wallet.engine import resolve_entry_point

logger = logging.getLogger("freedomkit.lifecycle.provisioning")


def rewrite_paths(settings: dict[str, Any], data_dir: Path) -> list[str]:
    """Point persisted path fields at ``data_dir``. Only existing fields change.

    Returns the dotted names of the fields that were rewritten.
    """
    changed: list[str] = []
    content_dir = data_dir / "content"

    database = settings.get("database")
    connection = database.get("connection") if isinstance(database, dict) else None
    if isinstance(connection, dict) and "filename" in connection:
        connection["filename"] = str(content_dir / "data" / "publisher.db")
        changed.append("database.connection.filename")

    paths = settings.get("paths")
    if isinstance(paths, dict) and "contentPath" in paths:
        paths["contentPath"] = str(content_dir)
        changed.append("paths.contentPath")

    return changed


def _write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}-", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class PublisherHost:
    """Provisions and boots the embedded publishing application."""

    def __init__(self, config: PublisherConfig):
        self._config = config
        self._data_dir = Path(config.data_dir).expanduser()
        self._thread: threading.Thread | None = None
        self._error: str = ""

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def error(self) -> str:
        return self._error

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------
    def provision(self) -> bool:
        """Copy bundled data on first run. Returns True if it provisioned now.

        Raises:
            ProvisioningError: the copy or the config rewrite failed.
        """
        if not self._config.bundle_dir:
            logger.info("No publisher bundle configured -- skipping provisioning")
            return False
        if self._data_dir.exists():
            logger.debug("Publisher data already at %s", self._data_dir)
            return False

        bundle = Path(self._config.bundle_dir).expanduser()
        if not bundle.is_dir():
            raise ProvisioningError(f"Publisher bundle not found: {bundle}")

        # Build next to the target, then rename so the data dir appears whole
        self._data_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{self._data_dir.name}-", dir=self._data_dir.parent))
        try:
            shutil.copytree(bundle, staging, dirs_exist_ok=True)
            config_path = staging / self._config.config_file
            if config_path.is_file():
                settings = json.loads(config_path.read_text(encoding="utf-8"))
                if not isinstance(settings, dict):
                    raise ValueError(f"{self._config.config_file} is not a JSON object")
                changed = rewrite_paths(settings, self._data_dir)
                _write_json_atomic(config_path, settings)
                logger.info("Rewrote publisher config fields: %s", ", ".join(changed) or "none")
            else:
                logger.warning("Publisher config %s not in bundle", self._config.config_file)
            os.replace(staging, self._data_dir)
        except (OSError, ValueError) as exc:
            shutil.rmtree(staging, ignore_errors=True)
            logger.error("Publisher provisioning failed: %s", exc)
            raise ProvisioningError(f"Publisher provisioning failed: {exc}") from exc

        logger.info("Provisioned publisher data at %s", self._data_dir)
        return True

    # ------------------------------------------------------------------
    # Boot
    # ------------------------------------------------------------------
    def boot(self) -> bool:
        """Start the configured entry point on a daemon thread.

        The entry point is called with the data directory as its only
        argument. Returns False when no entry point is configured.
        """
        if not self._config.boot:
            logger.info("No publisher entry point configured -- not booting")
            return False
        if self.is_running:
            logger.info("Publisher already running -- skipping boot")
            return True

        try:
            target = resolve_entry_point(self._config.boot)
        except (ValueError, ImportError, AttributeError) as exc:
            raise ProvisioningError(f"Cannot load publisher entry point: {exc}") from exc

        self._thread = threading.Thread(
            target=self._run,
            args=(target,),
            name="publisher",
            daemon=True,
        )
        self._thread.start()
        logger.info("Publisher booting from %s", self._config.boot)
        return True

    def _run(self, target) -> None:
        try:
            target(self._data_dir)
        except Exception as exc:
            self._error = str(exc)
            logger.exception("Publisher exited with an error")
