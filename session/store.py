"""
Session Store: the mutation engine over one session's data.

A Store is created per logical session access (typically one request),
populated by start(), and then mutated any number of times. Every
mutation re-serializes the whole data map, passes it through the optional
encryption layer, and writes it back to the backend under the current
session id. There is no partial update: the backend always holds a full
record, and concurrent accesses to the same id resolve as
last-write-wins.

Three keys inside the data map are reserved for bookkeeping and never
show up in enumeration, counting, dumping, or all():

- ``__ttl``: key -> absolute unix expiry for keys written with a TTL
- ``__flash_new``: keys flashed during the current cycle
- ``__flash_old``: keys flashed during the previous cycle, removed on
  the next start()
"""

import fnmatch
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from errors.exceptions import (
    BackendPermanentFailure,
    ReservedKey,
    SerializationFailure,
    SessionNotStarted,
)
from session.backends.base import SessionBackend
from session.cookies import CookieConfig, clearing_cookie, session_cookie
from session.encryption import Encrypter, EncryptionKeySet, KeyMaterial, is_envelope
from session.identity import generate_id, resolve_id

if TYPE_CHECKING:
    from session.scope import SessionScope

logger = logging.getLogger(__name__)

TTL_KEY = "__ttl"
FLASH_NEW = "__flash_new"
FLASH_OLD = "__flash_old"
RESERVED_KEYS = frozenset({TTL_KEY, FLASH_NEW, FLASH_OLD})

REDACTED = "***"
GLOB_CHARS = frozenset("*?[]")


def matches_pattern(key: str, pattern: str) -> bool:
    """
    Shell-glob match of ``key`` against ``pattern``.

    A pattern without any of ``* ? [ ]`` only matches itself; an empty
    pattern matches nothing.
    """
    if not pattern:
        return False
    if not GLOB_CHARS.intersection(pattern):
        return key == pattern
    return fnmatch.fnmatchcase(key, pattern)


def redact(
    data: dict[str, Any],
    redact_keys: Iterable[str] = (),
    redact_patterns: Iterable[str] = ()
) -> dict[str, Any]:
    """Replace values whose key is listed or matches a pattern by a marker."""
    keys = set(redact_keys)
    patterns = [p for p in redact_patterns if p]

    redacted = dict(data)
    for key in redacted:
        if key in keys or any(matches_pattern(key, p) for p in patterns):
            redacted[key] = REDACTED
    return redacted


def encode_payload(data: Any) -> str:
    """
    Serialize a value to canonical JSON text.

    Raises:
        SerializationFailure: If the value is not JSON-representable.
    """
    try:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationFailure(
            "Failed to encode session payload.",
            details={"reason": str(e)},
        ) from e


def decode_payload(payload: str) -> dict[str, Any]:
    """
    Parse a stored payload back into the data map.

    Raises:
        SerializationFailure: If the text is not a JSON object, or its TTL
            map is not an object of integer expiries.
    """
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise SerializationFailure("Invalid session payload.") from e

    if not isinstance(data, dict):
        raise SerializationFailure(
            "Invalid session payload.",
            details={"reason": f"expected a JSON object, got {type(data).__name__}"},
        )

    ttl = data.get(TTL_KEY)
    if ttl is not None:
        if not isinstance(ttl, dict):
            raise SerializationFailure(
                "Invalid session payload.",
                details={"reason": f"{TTL_KEY} must be an object"},
            )
        for key, expires in ttl.items():
            if isinstance(expires, bool) or not isinstance(expires, int):
                raise SerializationFailure(
                    "Invalid session payload.",
                    details={"reason": f"{TTL_KEY} entry {key!r} is not an integer expiry"},
                )
    return data


def _as_counter(value: Any) -> int:
    """Integer value of a stored counter; anything non-numeric counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


def _is_visible(key: Any) -> bool:
    return isinstance(key, str) and key not in RESERVED_KEYS


class Store:
    """
    Owns the in-memory copy of one session's data for one access.

    Example:
        store = Store(backend, inbound_id=request.cookies.get(COOKIE_NAME))
        store.start()
        store.put("user_id", 42)
        store.flash("notice", "Saved")
        response.headers.append("set-cookie", store.take_pending_cookie())

    Args:
        backend: Storage backend for the serialized record.
        session_id: Explicit id; must be valid or InvalidIdentity is raised.
        inbound_id: Untrusted id from the client; replaced if malformed.
        cookie: Cookie attributes (defaults to CookieConfig()).
        encryption: Key set enabling the encryption layer.
        secure_request: Whether the current request arrived over TLS.
        clock: Returns the current unix time in seconds.
    """

    def __init__(
        self,
        backend: SessionBackend,
        session_id: Optional[str] = None,
        *,
        inbound_id: Optional[str] = None,
        cookie: Optional[CookieConfig] = None,
        encryption: Optional[EncryptionKeySet] = None,
        secure_request: bool = False,
        clock: Callable[[], float] = time.time
    ):
        self._id = resolve_id(session_id, inbound_id)
        self._inbound_id = inbound_id
        self.backend = backend
        self.cookie = cookie or CookieConfig()
        self.secure_request = secure_request
        self._clock = clock
        self._encrypter = Encrypter(encryption) if encryption is not None else None
        self._data: dict[str, Any] = {}
        self._started = False
        self._pending_cookie: Optional[str] = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def encryption_enabled(self) -> bool:
        return self._encrypter is not None

    @property
    def pending_cookie(self) -> Optional[str]:
        """Set-Cookie value the HTTP layer still has to send, if any."""
        return self._pending_cookie

    def take_pending_cookie(self) -> Optional[str]:
        """Return the pending Set-Cookie value and clear it."""
        cookie, self._pending_cookie = self._pending_cookie, None
        return cookie

    def cookie_options(self) -> dict[str, Any]:
        """Resolved cookie attributes for the current request."""
        return self.cookie.options(self.secure_request)

    def scope(self, namespace: str, delimiter: str = ".") -> "SessionScope":
        from session.scope import SessionScope

        return SessionScope(self, namespace, delimiter)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Load the session from the backend.

        Queues the session cookie when the client does not already hold
        the current id, decrypts and decodes the stored record, upgrades
        a legacy plaintext record to an encrypted one when allowed, and
        ages flash data. At most one write is issued.

        Raises:
            DecryptionFailure: If the record cannot be opened.
            SerializationFailure: If the record is not a JSON object.
        """
        if self._inbound_id != self._id:
            self._queue_cookie()

        raw = self.backend.read(self._id)

        if not raw:
            self._data = {}
            self._started = True
            logger.debug("Started empty session", extra={"session_id": self._id})
            return

        payload = self._encrypter.decrypt(raw) if self._encrypter else raw
        self._data = decode_payload(payload)
        self._started = True

        migrate = (
            self._encrypter is not None
            and self._encrypter.allow_plaintext
            and not is_envelope(raw)
        )
        if migrate:
            logger.info(
                "Migrating plaintext session payload to encrypted form",
                extra={"session_id": self._id},
            )

        if self._age_flash_data() or migrate:
            self._persist()

    def regenerate_id(self, destroy_old: bool = True) -> None:
        """
        Move the session to a fresh id, keeping its data.

        Used to defend against session fixation, e.g. after login.
        """
        self._require_started()
        old_id = self._id
        self._id = generate_id()

        self._queue_cookie()
        self._persist()

        if destroy_old:
            self.backend.destroy(old_id)

        logger.info(
            "Session id regenerated",
            extra={"session_id": self._id, "destroyed_old": destroy_old},
        )

    def rotate_encryption_key(
        self,
        new_key: KeyMaterial,
        previous_keys: Iterable[KeyMaterial] = (),
        allow_plaintext: bool = False
    ) -> None:
        """
        Switch to a new primary key and re-persist under it.

        The new key set is validated before anything changes, so a bad key
        leaves the Store as it was.
        """
        self._require_started()
        keyset = EncryptionKeySet.from_config(new_key, previous_keys, allow_plaintext)
        self._encrypter = Encrypter(keyset)
        self._persist()

        logger.info(
            "Session encryption key rotated",
            extra={"session_id": self._id, "previous_keys": len(keyset.previous)},
        )

    def destroy(self, clear_cookie: bool = True) -> None:
        """Drop all data, delete the stored record and optionally the cookie."""
        self._data = {}
        self.backend.destroy(self._id)

        if clear_cookie:
            self._pending_cookie = clearing_cookie(self.cookie, self._clock(), self.secure_request)

        logger.info("Session destroyed", extra={"session_id": self._id})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        if self._purge_expired_key(key):
            self._persist()
            return default

        if key in RESERVED_KEYS:
            return default

        return self._data.get(key, default)

    def has(self, key: str) -> bool:
        if self._purge_expired_key(key):
            self._persist()
            return False

        return key in self._data and key not in RESERVED_KEYS

    def ttl(self, key: str) -> Optional[int]:
        """Seconds until ``key`` expires, or None if it has no TTL."""
        if self._purge_expired_key(key):
            self._persist()
            return None

        ttl = self._ttl_map()
        if key not in ttl:
            return None

        return max(0, int(ttl[key]) - self._now())

    def expires_at(self, key: str) -> Optional[int]:
        """Absolute unix expiry of ``key``, or None if it has no TTL."""
        if self._purge_expired_key(key):
            self._persist()
            return None

        ttl = self._ttl_map()
        if key not in ttl:
            return None

        expires = int(ttl[key])
        return expires if expires > self._now() else None

    def keys(self, prefix: Optional[str] = None) -> list[str]:
        self.sweep_expired()
        return [
            key for key in self._data
            if _is_visible(key) and (prefix is None or key.startswith(prefix))
        ]

    def keys_match(self, pattern: str) -> list[str]:
        self.sweep_expired()
        return [key for key in self._data if _is_visible(key) and matches_pattern(key, pattern)]

    def count(self) -> int:
        self.sweep_expired()
        return sum(1 for key in self._data if _is_visible(key))

    def size(self) -> int:
        """Byte length of the payload as it would be written to the backend."""
        self.sweep_expired()
        return len(self._serialize().encode("utf-8"))

    def all(self) -> dict[str, Any]:
        self.sweep_expired()
        return {key: value for key, value in self._data.items() if _is_visible(key)}

    def dump(
        self,
        redact_keys: Iterable[str] = (),
        redact_patterns: Iterable[str] = ()
    ) -> dict[str, Any]:
        """Copy of the visible data with sensitive values masked."""
        return redact(self.all(), redact_keys, redact_patterns)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def put(self, key: str, value: Any) -> None:
        self._check_key(key)
        encode_payload(value)

        self._data[key] = value
        self._drop_ttl(key)
        self._persist()

    def put_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self.forget(key)
            return

        self._check_key(key)
        encode_payload(value)

        self._data[key] = value
        ttl = self._ttl_map()
        ttl[key] = self._now() + int(ttl_seconds)
        self._set_ttl_map(ttl)
        self._persist()

    def touch(self, key: str, ttl_seconds: int) -> bool:
        """Refresh the TTL of an existing key; a non-positive TTL forgets it."""
        self._require_started()
        if not self.has(key):
            return False

        if ttl_seconds <= 0:
            self.forget(key)
            return False

        ttl = self._ttl_map()
        ttl[key] = self._now() + int(ttl_seconds)
        self._set_ttl_map(ttl)
        self._persist()
        return True

    def touch_all(self, ttl_seconds: int, prefix: Optional[str] = None) -> int:
        """Refresh the TTL of every key (optionally under a prefix)."""
        self._require_started()
        swept = self._sweep()

        if ttl_seconds <= 0:
            if swept:
                self._persist()
            return 0

        expires = self._now() + int(ttl_seconds)
        ttl = self._ttl_map()
        updated = 0

        for key in self._data:
            if not _is_visible(key):
                continue
            if prefix is not None and not key.startswith(prefix):
                continue
            ttl[key] = expires
            updated += 1

        if updated:
            self._set_ttl_map(ttl)

        if updated or swept:
            self._persist()

        return updated

    def forget(self, key: str) -> None:
        self._check_key(key)

        self._data.pop(key, None)
        self._drop_ttl(key)
        self._persist()

    def forget_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return

        for key in keys:
            self._check_key(key)

        ttl = self._ttl_map()
        for key in keys:
            self._data.pop(key, None)
            ttl.pop(key, None)
        self._set_ttl_map(ttl)

        self._persist()

    def forget_namespace(self, prefix: str, delimiter: str = ".") -> None:
        """Remove every key under ``prefix`` followed by the delimiter."""
        self._require_started()
        changed = self._sweep() > 0
        full_prefix = prefix.rstrip(delimiter) + delimiter

        ttl = self._ttl_map()
        for key in [k for k in self._data if _is_visible(k) and k.startswith(full_prefix)]:
            del self._data[key]
            ttl.pop(key, None)
            changed = True

        if changed:
            self._set_ttl_map(ttl)
            self._persist()

    def pull(self, key: str, default: Any = None) -> Any:
        """Return the value of ``key`` and remove it, in a single write."""
        self._require_started()
        purged = self._purge_expired_key(key)

        if key not in self._data or key in RESERVED_KEYS:
            if purged:
                self._persist()
            return default

        value = self._data.pop(key)
        self._drop_ttl(key)
        self._persist()
        return value

    def increment(self, key: str, by: int = 1) -> int:
        """
        Add ``by`` to an integer counter and return the new value.

        A missing or non-numeric value counts as 0; integer strings such
        as ``"5"`` are parsed. An existing TTL on the key is kept.
        """
        self._check_key(key)
        self._purge_expired_key(key)

        value = _as_counter(self._data.get(key, 0)) + int(by)
        self._data[key] = value
        self._persist()
        return value

    def flash(self, key: str, value: Any) -> None:
        """
        Store a value that survives until the end of the next access.

        An existing TTL on the key is kept, so it may expire sooner.
        """
        self._check_key(key)
        encode_payload(value)

        self._data[key] = value

        flashed = self._data.get(FLASH_NEW)
        if not isinstance(flashed, list):
            flashed = []
        if key not in flashed:
            flashed.append(key)
        self._data[FLASH_NEW] = flashed

        self._persist()

    def sweep_expired(self) -> int:
        """Remove every expired key; a single write if anything changed."""
        removed = self._sweep()
        if removed:
            self._persist()
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _check_key(self, key: str) -> None:
        self._require_started()
        if key in RESERVED_KEYS:
            raise ReservedKey(f"Key '{key}' is reserved.", details={"key": key})

    def _queue_cookie(self) -> None:
        self._pending_cookie = session_cookie(
            self._id, self.cookie, self._clock(), self.secure_request
        )

    def _ttl_map(self) -> dict[str, int]:
        ttl = self._data.get(TTL_KEY)
        return dict(ttl) if isinstance(ttl, dict) else {}

    def _set_ttl_map(self, ttl: dict[str, int]) -> None:
        if ttl:
            self._data[TTL_KEY] = ttl
        else:
            self._data.pop(TTL_KEY, None)

    def _drop_ttl(self, key: str) -> None:
        ttl = self._ttl_map()
        if key in ttl:
            del ttl[key]
            self._set_ttl_map(ttl)

    def _purge_expired_key(self, key: str) -> bool:
        ttl = self._ttl_map()
        if key not in ttl or int(ttl[key]) > self._now():
            return False

        del ttl[key]
        self._data.pop(key, None)
        self._set_ttl_map(ttl)

        logger.debug("Purged expired key", extra={"session_id": self._id, "key": key})
        return True

    def _sweep(self) -> int:
        ttl = self._ttl_map()
        if not ttl:
            return 0

        now = self._now()
        expired = [key for key, expires in ttl.items() if int(expires) <= now]
        for key in expired:
            del ttl[key]
            self._data.pop(key, None)

        if expired:
            self._set_ttl_map(ttl)
        return len(expired)

    def _age_flash_data(self) -> bool:
        changed = False

        flashed = self._data.get(FLASH_NEW)
        flashed = [k for k in flashed if isinstance(k, str)] if isinstance(flashed, list) else []

        previous = self._data.get(FLASH_OLD)
        if isinstance(previous, list):
            ttl = self._ttl_map()
            for key in previous:
                # A key flashed again last cycle gets another full cycle
                if not _is_visible(key) or key in flashed or key not in self._data:
                    continue
                del self._data[key]
                ttl.pop(key, None)
                changed = True
            self._set_ttl_map(ttl)

        if flashed:
            if self._data.get(FLASH_OLD) != flashed:
                self._data[FLASH_OLD] = flashed
                changed = True
        elif FLASH_OLD in self._data:
            del self._data[FLASH_OLD]
            changed = True

        if FLASH_NEW in self._data:
            del self._data[FLASH_NEW]
            changed = True

        return changed

    def _serialize(self) -> str:
        payload = encode_payload(self._data)
        if self._encrypter is not None:
            payload = self._encrypter.encrypt(payload)
        return payload

    def _require_started(self) -> None:
        if not self._started:
            raise SessionNotStarted(
                "Session must be started before it is modified.",
                details={"session_id": self._id},
            )

    def _persist(self) -> None:
        self._require_started()
        payload = self._serialize()

        if not self.backend.write(self._id, payload):
            raise BackendPermanentFailure(
                "Backend rejected session write.",
                operation_name="write",
                details={"session_id": self._id},
            )

        logger.debug(
            "Session persisted",
            extra={"session_id": self._id, "payload_bytes": len(payload)},
        )
