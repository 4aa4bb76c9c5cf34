"""Authenticated encryption for mailbox provider credentials at rest.

Tokens are three colon-separated lower-case hex segments::

    <16-byte IV>:<16-byte GCM tag>:<ciphertext>

The key is a fixed 256-bit value taken from ``ENCRYPTION_KEY`` (exactly 32
characters). A missing or malformed key is fatal at construction time so the
service refuses traffic instead of failing on the first credential it reads.
"""

from __future__ import annotations

import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import get_settings
from ..errors import IntegrityError

logger = logging.getLogger(__name__)

KEY_BYTES = 32
IV_BYTES = 16
TAG_BYTES = 16


class CredentialVault:
    """Encrypt and decrypt provider credentials with AES-256-GCM."""

    def __init__(self, key: str | bytes | None) -> None:
        if not key:
            raise IntegrityError("ENCRYPTION_KEY must be set")
        raw = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        if len(raw) != KEY_BYTES:
            raise IntegrityError(
                f"ENCRYPTION_KEY must be exactly {KEY_BYTES} bytes long"
            )
        self._cipher = AESGCM(raw)

    @classmethod
    def from_env(cls) -> "CredentialVault":
        """Build a vault from the configured ``ENCRYPTION_KEY``.

        Reads :func:`~replydesk.config.get_settings`, so a ``.env`` file is
        honoured. Raises :class:`IntegrityError` when the key is unusable.
        """

        return cls(get_settings().encryption_key)

    def encrypt(self, plaintext: str) -> str:
        iv = secrets.token_bytes(IV_BYTES)
        sealed = self._cipher.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Return the plaintext for ``token``.

        Raises :class:`IntegrityError` when the token is malformed or the
        authentication tag does not verify. The token itself is never logged.
        """

        parts = token.split(":") if isinstance(token, str) else []
        if len(parts) != 3:
            raise IntegrityError("Invalid encrypted text format")
        try:
            iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as exc:
            raise IntegrityError("Invalid encrypted text format") from exc
        if len(iv) != IV_BYTES or len(tag) != TAG_BYTES:
            raise IntegrityError("Invalid encrypted text format")
        try:
            plaintext = self._cipher.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            logger.warning("Credential token failed authentication")
            raise IntegrityError("Failed to decrypt data") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:  # pragma: no cover - tag already verified
            raise IntegrityError("Failed to decrypt data") from exc


__all__ = ["CredentialVault", "IV_BYTES", "KEY_BYTES", "TAG_BYTES"]
