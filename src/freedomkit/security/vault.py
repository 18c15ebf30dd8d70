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
FreedomKit -- Credential Vault

Password-encrypted storage for the wallet's recovery material.

Record layout (base64 text, one file per installation):

  v1:      "FKV1" || iterations (uint32 BE) || salt(32) || nonce(16) || tag(16) || ciphertext
  legacy:  salt(32) || nonce(16) || tag(16) || ciphertext      (100,000 iterations)

The header iteration count must lie within the KDF work factor bounds;
anything else is treated as a damaged record. Legacy payloads used the
``railgunId`` and ``railgunEncryptionSalt`` key names, which are still read.

Design principles:
  - AES-256-GCM with a PBKDF2-HMAC-SHA256 derived key
  - Fresh random salt and nonce on every write
  - No plaintext is returned before the GCM tag verifies
  - Wrong password and damaged record are reported identically
  - Writes are atomic (temp file + fsync + os.replace); the record is
    either fully absent or fully present
  - create/unlock/rekey are serialized with a lock
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import struct
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from freedomkit.config import MAX_KDF_ITERATIONS, MIN_KDF_ITERATIONS
from freedomkit.errors import InvalidPasswordOrCorrupted, VaultAlreadyExists, VaultNotFound

logger = logging.getLogger("freedomkit.security.vault")

MAGIC = b"FKV1"
SALT_BYTES = 32
NONCE_BYTES = 16
TAG_BYTES = 16
KEY_BYTES = 32
LEGACY_ITERATIONS = 100_000
DEFAULT_ITERATIONS = 600_000

_HEADER = struct.Struct(">4sI")


# =============================================================================
# Key derivation
# =============================================================================


def derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    """PBKDF2-HMAC-SHA256 -> 32-byte key."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def derive_engine_key(password: str, engine_salt: str | bytes) -> str:
    """Hex-encoded key the wallet engine uses to encrypt its own wallet data.

    ``engine_salt`` is the hex string stored in the vault payload (or raw bytes).
    """
    salt = bytes.fromhex(engine_salt) if isinstance(engine_salt, str) else engine_salt
    return derive_key(password, salt, LEGACY_ITERATIONS).hex()


# =============================================================================
# Payload
# =============================================================================


def _first(raw: dict, *keys: str):
    for key in keys:
        if key in raw:
            return raw[key]
    raise KeyError(keys[0])


@dataclass(frozen=True)
class VaultPayload:
    """Decrypted vault contents. Never log an instance of this."""

    mnemonic: str
    engine_wallet_id: str
    engine_salt: str  # hex

    def to_json(self) -> bytes:
        return json.dumps(
            {
                "mnemonic": self.mnemonic,
                "engineWalletId": self.engine_wallet_id,
                "engineEncryptionSalt": self.engine_salt,
            },
            separators=(",", ":"),
        ).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> VaultPayload:
        raw = json.loads(data.decode("utf-8"))
        return cls(
            mnemonic=str(raw["mnemonic"]),
            engine_wallet_id=str(_first(raw, "engineWalletId", "railgunId")),
            engine_salt=str(_first(raw, "engineEncryptionSalt", "railgunEncryptionSalt")),
        )

    def __repr__(self) -> str:
        return f"VaultPayload(engine_wallet_id={self.engine_wallet_id!r})"


# =============================================================================
# Record codec
# =============================================================================


def seal(payload: VaultPayload, password: str, iterations: int = DEFAULT_ITERATIONS) -> str:
    """Encrypt a payload into a v1 record (base64 text)."""
    salt = os.urandom(SALT_BYTES)
    nonce = os.urandom(NONCE_BYTES)
    key = derive_key(password, salt, iterations)
    sealed = AESGCM(key).encrypt(nonce, payload.to_json(), None)
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    record = _HEADER.pack(MAGIC, iterations) + salt + nonce + tag + ciphertext
    return base64.b64encode(record).decode("ascii")


def open_record(text: str, password: str) -> VaultPayload:
    """Decrypt a v1 or legacy record.

    Raises:
        InvalidPasswordOrCorrupted: on any decode, tag or JSON failure.
    """
    try:
        record = base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidPasswordOrCorrupted() from None

    iterations = LEGACY_ITERATIONS
    if record[: len(MAGIC)] == MAGIC and len(record) >= _HEADER.size:
        _, iterations = _HEADER.unpack_from(record)
        record = record[_HEADER.size :]
        if not MIN_KDF_ITERATIONS <= iterations <= MAX_KDF_ITERATIONS:
            raise InvalidPasswordOrCorrupted()

    if len(record) < SALT_BYTES + NONCE_BYTES + TAG_BYTES:
        raise InvalidPasswordOrCorrupted()

    salt = record[:SALT_BYTES]
    nonce = record[SALT_BYTES : SALT_BYTES + NONCE_BYTES]
    tag = record[SALT_BYTES + NONCE_BYTES : SALT_BYTES + NONCE_BYTES + TAG_BYTES]
    ciphertext = record[SALT_BYTES + NONCE_BYTES + TAG_BYTES :]

    key = derive_key(password, salt, iterations)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag:
        raise InvalidPasswordOrCorrupted() from None

    try:
        return VaultPayload.from_json(plaintext)
    except (ValueError, KeyError, TypeError):
        raise InvalidPasswordOrCorrupted() from None


# =============================================================================
# Vault
# =============================================================================


class CredentialVault:
    """Single-record password vault backed by one file."""

    def __init__(self, path: str | Path, iterations: int = DEFAULT_ITERATIONS):
        self._path = Path(path)
        self._iterations = min(max(int(iterations), MIN_KDF_ITERATIONS), MAX_KDF_ITERATIONS)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def iterations(self) -> int:
        return self._iterations

    def exists(self) -> bool:
        return self._path.is_file()

    def create(
        self, mnemonic: str, engine_wallet_id: str, engine_salt: str, password: str
    ) -> None:
        """Encrypt and persist a new record.

        Raises:
            VaultAlreadyExists: if a record is already present.
        """
        payload = VaultPayload(mnemonic, engine_wallet_id, engine_salt)
        with self._lock:
            if self.exists():
                raise VaultAlreadyExists()
            self._write(seal(payload, password, self._iterations))
        logger.info("Vault record created at %s", self._path)

    def unlock(self, password: str) -> VaultPayload:
        """Read and decrypt the record.

        Raises:
            VaultNotFound: if no record exists.
            InvalidPasswordOrCorrupted: wrong password or damaged record.
        """
        with self._lock:
            return self._read(password)

    def rekey(
        self,
        current_password: str,
        new_password: str,
        *,
        engine_wallet_id: str | None = None,
        engine_salt: str | None = None,
    ) -> VaultPayload:
        """Re-encrypt the record under a new password.

        Optionally replaces the engine wallet identifiers in the same write.
        Returns the payload as stored.
        """
        with self._lock:
            current = self._read(current_password)
            payload = VaultPayload(
                mnemonic=current.mnemonic,
                engine_wallet_id=engine_wallet_id or current.engine_wallet_id,
                engine_salt=engine_salt or current.engine_salt,
            )
            self._write(seal(payload, new_password, self._iterations))
        logger.info("Vault record re-keyed at %s", self._path)
        return payload

    # -------------------------------------------------------------------------

    def _read(self, password: str) -> VaultPayload:
        try:
            text = self._path.read_text(encoding="ascii")
        except FileNotFoundError:
            raise VaultNotFound() from None
        except UnicodeDecodeError:
            raise InvalidPasswordOrCorrupted() from None
        return open_record(text, password)

    def _write(self, text: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".wallet-", suffix=".tmp", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, 0o600)
            os.replace(tmp, self._path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
