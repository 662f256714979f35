"""
Authenticated encryption of persisted session payloads.

Payloads are sealed with AES-256-GCM and stored in a versioned envelope:

    "v1:" + base64(nonce || ciphertext || tag)

Decryption tries the primary key first and then each previous key in
order, so keys can be rotated without invalidating sessions that were
written under an older key.
"""

import base64
import binascii
import logging
import os
import string
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple, Union

from errors.exceptions import DecryptionFailure, EncryptionConfigError

logger = logging.getLogger(__name__)

ENVELOPE_PREFIX = "v1:"
KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16

KeyMaterial = Union[str, bytes]


def normalize_key(value: KeyMaterial) -> bytes:
    """
    Resolve key material to 32 raw bytes.

    Accepts 32 raw bytes, a 64-character hex string, or a base64 string
    that decodes to 32 bytes.

    Raises:
        EncryptionConfigError: If the value cannot be resolved.
    """
    if isinstance(value, bytes):
        if len(value) == KEY_BYTES:
            return value
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError:
            raise EncryptionConfigError(
                "Encryption key must be 32 bytes (raw), 64 hex chars, or base64."
            ) from None

    if not isinstance(value, str) or not value:
        raise EncryptionConfigError("Encryption key is required.")

    value = value.strip()
    raw: Optional[bytes] = None

    if len(value) == KEY_BYTES * 2 and all(c in string.hexdigits for c in value):
        raw = bytes.fromhex(value)
    else:
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raw = None

    if raw is None or len(raw) != KEY_BYTES:
        raise EncryptionConfigError(
            "Encryption key must be 32 bytes (raw), 64 hex chars, or base64."
        )

    return raw


@dataclass(frozen=True)
class EncryptionKeySet:
    """
    Keys used to seal and open session payloads.

    Attributes:
        primary: Key used for every new envelope.
        previous: Older keys still accepted for decryption, tried in order.
        allow_plaintext: Accept stored payloads that predate encryption.
    """
    primary: bytes
    previous: Tuple[bytes, ...] = field(default_factory=tuple)
    allow_plaintext: bool = False

    @classmethod
    def from_config(
        cls,
        key: KeyMaterial,
        previous_keys: Iterable[KeyMaterial] = (),
        allow_plaintext: bool = False
    ) -> "EncryptionKeySet":
        """Normalize raw configuration values into a key set."""
        if isinstance(previous_keys, (str, bytes)):
            raise EncryptionConfigError("previous_keys must be a sequence of keys.")

        primary = normalize_key(key)
        previous = tuple(normalize_key(k) for k in previous_keys)
        return cls(primary=primary, previous=previous, allow_plaintext=bool(allow_plaintext))

    @property
    def decryption_keys(self) -> Tuple[bytes, ...]:
        return (self.primary,) + self.previous


def is_envelope(payload: str) -> bool:
    """Return True if the payload is in the versioned encrypted form."""
    return payload.startswith(ENVELOPE_PREFIX)


class Encrypter:
    """
    Seals and opens session payloads under an EncryptionKeySet.

    The cryptography package is imported on construction so that a
    deployment without it only fails when encryption is actually
    configured.
    """

    def __init__(self, keyset: EncryptionKeySet):
        try:
            from cryptography.hazmat.primitives.ciphers.aead import AESGCM
        except ImportError as e:
            raise EncryptionConfigError(
                "The 'cryptography' package is required for session encryption."
            ) from e

        self.keyset = keyset
        self._primary = AESGCM(keyset.primary)
        self._openers = [AESGCM(k) for k in keyset.decryption_keys]

    @property
    def allow_plaintext(self) -> bool:
        return self.keyset.allow_plaintext

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_BYTES)
        sealed = self._primary.encrypt(nonce, plaintext.encode("utf-8"), None)
        return ENVELOPE_PREFIX + base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, payload: str) -> str:
        """
        Open an envelope, or pass plaintext through when allowed.

        Raises:
            DecryptionFailure: If the payload is not an envelope (and
                plaintext is not allowed), is malformed, or no key opens it.
        """
        if not is_envelope(payload):
            if self.keyset.allow_plaintext:
                return payload
            raise DecryptionFailure("Encrypted session payload expected.")

        try:
            decoded = base64.b64decode(payload[len(ENVELOPE_PREFIX):], validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailure("Invalid encrypted payload encoding.") from e

        if len(decoded) < NONCE_BYTES + TAG_BYTES:
            raise DecryptionFailure("Invalid encrypted payload.")

        from cryptography.exceptions import InvalidTag

        nonce, sealed = decoded[:NONCE_BYTES], decoded[NONCE_BYTES:]
        for index, opener in enumerate(self._openers):
            try:
                plaintext = opener.decrypt(nonce, sealed, None)
            except InvalidTag:
                continue
            if index > 0:
                logger.debug(
                    "Session payload opened with a previous key",
                    extra={"key_index": index},
                )
            try:
                return plaintext.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecryptionFailure("Decrypted payload is not valid UTF-8.") from e

        raise DecryptionFailure("Failed to decrypt session payload.")
