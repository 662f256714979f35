"""
Unit tests for the encryption layer.

Tests cover:
- Key normalization from raw bytes, hex and base64
- Envelope format and round trips
- Decryption with previous keys
- Plaintext handling and failure modes
- Encryption through the Store, including key rotation
"""

import base64
import json

import pytest

from errors.codes import ErrorCode
from errors.exceptions import DecryptionFailure, EncryptionConfigError
from session.encryption import (
    ENVELOPE_PREFIX,
    Encrypter,
    EncryptionKeySet,
    is_envelope,
    normalize_key,
)
from session.store import Store

SESSION_ID = "0123456789abcdef0123456789abcdef"
RAW_KEY = bytes(range(32))


class TestNormalizeKey:
    """Tests for normalize_key."""

    def test_raw_32_bytes(self):
        assert normalize_key(RAW_KEY) == RAW_KEY

    def test_hex_string(self):
        assert normalize_key(RAW_KEY.hex()) == RAW_KEY

    def test_base64_string(self):
        assert normalize_key(base64.b64encode(RAW_KEY).decode("ascii")) == RAW_KEY

    def test_base64_bytes(self):
        assert normalize_key(base64.b64encode(RAW_KEY)) == RAW_KEY

    def test_surrounding_whitespace_is_ignored(self):
        assert normalize_key(f"  {RAW_KEY.hex()}\n") == RAW_KEY

    @pytest.mark.parametrize("value", [
        "",
        "short",
        "zz" * 32,
        base64.b64encode(b"x" * 16).decode("ascii"),
        b"x" * 31,
        b"\xff" * 40,
    ])
    def test_invalid_material_raises(self, value):
        with pytest.raises(EncryptionConfigError) as exc_info:
            normalize_key(value)

        assert exc_info.value.error_code == ErrorCode.ENCRYPTION_CONFIG_ERROR


class TestEncryptionKeySet:
    """Tests for EncryptionKeySet.from_config."""

    def test_from_config_normalizes_all_keys(self, hex_key, base64_key):
        keyset = EncryptionKeySet.from_config(hex_key, [base64_key], allow_plaintext=True)

        assert keyset.primary == bytes.fromhex(hex_key)
        assert keyset.previous == (base64.b64decode(base64_key),)
        assert keyset.allow_plaintext is True
        assert keyset.decryption_keys == (keyset.primary,) + keyset.previous

    def test_previous_keys_as_single_string_is_rejected(self, hex_key, base64_key):
        with pytest.raises(EncryptionConfigError):
            EncryptionKeySet.from_config(hex_key, base64_key)

    def test_invalid_previous_key_is_rejected(self, hex_key):
        with pytest.raises(EncryptionConfigError):
            EncryptionKeySet.from_config(hex_key, ["nope"])


class TestEncrypter:
    """Tests for Encrypter.encrypt and Encrypter.decrypt."""

    def test_round_trip(self, keyset):
        encrypter = Encrypter(keyset)

        sealed = encrypter.encrypt('{"a":1}')

        assert is_envelope(sealed)
        assert sealed.startswith(ENVELOPE_PREFIX)
        assert encrypter.decrypt(sealed) == '{"a":1}'

    def test_each_envelope_uses_a_fresh_nonce(self, keyset):
        encrypter = Encrypter(keyset)

        assert encrypter.encrypt("same") != encrypter.encrypt("same")

    def test_unicode_round_trip(self, keyset):
        encrypter = Encrypter(keyset)

        assert encrypter.decrypt(encrypter.encrypt("héllo ✓")) == "héllo ✓"

    def test_previous_key_can_decrypt(self, hex_key, base64_key):
        old = Encrypter(EncryptionKeySet.from_config(base64_key))
        new = Encrypter(EncryptionKeySet.from_config(hex_key, [base64_key]))

        assert new.decrypt(old.encrypt("legacy")) == "legacy"

    def test_unknown_key_fails(self, hex_key, base64_key):
        sealed = Encrypter(EncryptionKeySet.from_config(base64_key)).encrypt("secret")

        with pytest.raises(DecryptionFailure):
            Encrypter(EncryptionKeySet.from_config(hex_key)).decrypt(sealed)

    def test_plaintext_rejected_by_default(self, keyset):
        with pytest.raises(DecryptionFailure):
            Encrypter(keyset).decrypt('{"a":1}')

    def test_plaintext_passes_through_when_allowed(self, hex_key):
        encrypter = Encrypter(EncryptionKeySet.from_config(hex_key, allow_plaintext=True))

        assert encrypter.decrypt('{"a":1}') == '{"a":1}'

    @pytest.mark.parametrize("payload", [
        "v1:not base64!!",
        "v1:" + base64.b64encode(b"too short").decode("ascii"),
    ])
    def test_malformed_envelope_fails(self, keyset, payload):
        with pytest.raises(DecryptionFailure):
            Encrypter(keyset).decrypt(payload)

    def test_tampered_envelope_fails(self, keyset):
        encrypter = Encrypter(keyset)
        raw = bytearray(base64.b64decode(encrypter.encrypt("secret")[len(ENVELOPE_PREFIX):]))
        raw[-1] ^= 0x01
        tampered = ENVELOPE_PREFIX + base64.b64encode(bytes(raw)).decode("ascii")

        with pytest.raises(DecryptionFailure):
            encrypter.decrypt(tampered)


class TestStoreEncryption:
    """Encryption as seen through the Store."""

    def test_persisted_payload_is_an_envelope(self, backend, clock, keyset):
        store = Store(backend, SESSION_ID, encryption=keyset, clock=clock)
        store.start()
        store.put("secret", "value")

        raw = backend.read(SESSION_ID)
        assert raw.startswith(ENVELOPE_PREFIX)
        assert "value" not in raw

    def test_round_trip_across_accesses(self, backend, clock, keyset):
        store = Store(backend, SESSION_ID, encryption=keyset, clock=clock)
        store.start()
        store.put("user", {"id": 7})

        reloaded = Store(backend, SESSION_ID, encryption=keyset, clock=clock)
        reloaded.start()

        assert reloaded.get("user") == {"id": 7}

    def test_rotation_keeps_data_readable_with_previous_key(self, backend, clock, hex_key, base64_key):
        key_a, key_b = hex_key, base64_key
        store = Store(backend, SESSION_ID, encryption=EncryptionKeySet.from_config(key_a), clock=clock)
        store.start()
        store.put("k", "v")

        store.rotate_encryption_key(key_b, [key_a])

        with_b = Store(backend, SESSION_ID, encryption=EncryptionKeySet.from_config(key_b), clock=clock)
        with_b.start()
        assert with_b.get("k") == "v"

        with_a = Store(backend, SESSION_ID, encryption=EncryptionKeySet.from_config(key_a), clock=clock)
        with pytest.raises(DecryptionFailure):
            with_a.start()

    def test_rotation_with_bad_key_leaves_store_unchanged(self, backend, clock, keyset):
        store = Store(backend, SESSION_ID, encryption=keyset, clock=clock)
        store.start()
        store.put("k", "v")
        before = backend.read(SESSION_ID)

        with pytest.raises(EncryptionConfigError):
            store.rotate_encryption_key("not-a-key")

        assert backend.read(SESSION_ID) == before
        store.put("k2", "v2")
        reloaded = Store(backend, SESSION_ID, encryption=keyset, clock=clock)
        reloaded.start()
        assert reloaded.all() == {"k": "v", "k2": "v2"}

    def test_rotation_enables_encryption_on_plain_store(self, backend, clock, hex_key):
        store = Store(backend, SESSION_ID, clock=clock)
        store.start()
        store.put("k", "v")

        store.rotate_encryption_key(hex_key)

        assert store.encryption_enabled
        assert is_envelope(backend.read(SESSION_ID))

    def test_plaintext_record_fails_without_allow_plaintext(self, backend, clock, keyset):
        backend.write(SESSION_ID, json.dumps({"a": 1}))
        store = Store(backend, SESSION_ID, encryption=keyset, clock=clock)

        with pytest.raises(DecryptionFailure):
            store.start()

    def test_plaintext_record_is_migrated_when_allowed(self, counting_backend, clock, hex_key):
        counting_backend.write(SESSION_ID, json.dumps({"a": 1}))
        counting_backend.writes = 0
        keyset = EncryptionKeySet.from_config(hex_key, allow_plaintext=True)
        store = Store(counting_backend, SESSION_ID, encryption=keyset, clock=clock)

        store.start()

        assert store.get("a") == 1
        assert counting_backend.writes == 1
        assert is_envelope(counting_backend.read(SESSION_ID))

    def test_size_reflects_encrypted_payload(self, backend, clock, keyset):
        plain = Store(backend, SESSION_ID, clock=clock)
        plain.start()
        plain.put("k", "v")

        encrypted = Store(backend, "f" * 32, encryption=keyset, clock=clock)
        encrypted.start()
        encrypted.put("k", "v")

        assert encrypted.size() > plain.size()
