"""
Namespaced view over a session Store.

A scope prefixes every key with ``namespace + delimiter`` before handing
it to the Store, and strips the prefix from keys it returns. Scopes share
the Store's record, so two scopes over the same Store see the same
persisted data but each only enumerates its own keys.
"""

from typing import TYPE_CHECKING, Any, Iterable, Optional

from session.store import encode_payload, redact

if TYPE_CHECKING:
    from session.store import Store


class SessionScope:
    """
    Key-prefixing façade over a Store.

    Example:
        admin = SessionScope(store, "admin")
        admin.put("token", "a")        # stored as "admin.token"
        admin.all()                    # {"token": "a"}
    """

    def __init__(self, store: "Store", namespace: str, delimiter: str = "."):
        self.store = store
        self.namespace = namespace
        self.delimiter = delimiter
        self.prefix = namespace.rstrip(delimiter) + delimiter

    def _key(self, key: str) -> str:
        return self.prefix + key

    def _strip(self, keys: Iterable[str]) -> list[str]:
        return [key[len(self.prefix):] for key in keys if key.startswith(self.prefix)]

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(self._key(key), default)

    def has(self, key: str) -> bool:
        return self.store.has(self._key(key))

    def put(self, key: str, value: Any) -> None:
        self.store.put(self._key(key), value)

    def put_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.store.put_with_ttl(self._key(key), value, ttl_seconds)

    def ttl(self, key: str) -> Optional[int]:
        return self.store.ttl(self._key(key))

    def expires_at(self, key: str) -> Optional[int]:
        return self.store.expires_at(self._key(key))

    def touch(self, key: str, ttl_seconds: int) -> bool:
        return self.store.touch(self._key(key), ttl_seconds)

    def touch_all(self, ttl_seconds: int) -> int:
        return self.store.touch_all(ttl_seconds, self.prefix)

    def forget(self, key: str) -> None:
        self.store.forget(self._key(key))

    def forget_many(self, keys: Iterable[str]) -> None:
        self.store.forget_many([self._key(key) for key in keys])

    def forget_namespace(self) -> None:
        """Remove every key in this scope."""
        self.store.forget_namespace(self.namespace, self.delimiter)

    def pull(self, key: str, default: Any = None) -> Any:
        return self.store.pull(self._key(key), default)

    def increment(self, key: str, by: int = 1) -> int:
        return self.store.increment(self._key(key), by)

    def flash(self, key: str, value: Any) -> None:
        self.store.flash(self._key(key), value)

    def all(self) -> dict[str, Any]:
        return {
            key[len(self.prefix):]: value
            for key, value in self.store.all().items()
            if key.startswith(self.prefix)
        }

    def keys(self) -> list[str]:
        return self._strip(self.store.keys(self.prefix))

    def keys_match(self, pattern: str) -> list[str]:
        if not pattern:
            return []
        return self._strip(self.store.keys_match(self.prefix + pattern))

    def count(self) -> int:
        return len(self.keys())

    def size(self) -> int:
        """Byte length of this scope's data encoded as JSON."""
        return len(encode_payload(self.all()).encode("utf-8"))

    def dump(
        self,
        redact_keys: Iterable[str] = (),
        redact_patterns: Iterable[str] = ()
    ) -> dict[str, Any]:
        return redact(self.all(), redact_keys, redact_patterns)
