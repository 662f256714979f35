"""
Storage backend abstraction for session payloads.

This module defines the four-operation contract every storage backend
implements. Backends store opaque string payloads keyed by session id;
they never look inside the payload, which may be plain JSON or an
encrypted envelope.
"""

from abc import ABC, abstractmethod


class SessionBackend(ABC):
    """
    Abstract base class for session storage backends.

    Implementations may keep payloads in process memory, on the local
    filesystem, in a shared cache, or in Redis. All methods are
    synchronous; the Store calls them once per logical operation.
    """

    @abstractmethod
    def read(self, session_id: str) -> str:
        """
        Retrieve the stored payload for a session.

        Args:
            session_id: Unique identifier for the session.

        Returns:
            The stored payload, or an empty string if nothing is stored
            for this id. A missing record is not an error.

        Raises:
            BackendPermanentFailure: If the underlying store keeps failing.
        """

    @abstractmethod
    def write(self, session_id: str, payload: str) -> bool:
        """
        Replace the stored payload for a session.

        Must be safe to call repeatedly for the same id.

        Args:
            session_id: Unique identifier for the session.
            payload: Full serialized session record.

        Returns:
            True if the payload was stored.
        """

    @abstractmethod
    def destroy(self, session_id: str) -> bool:
        """
        Delete the stored payload for a session.

        This operation is idempotent - destroying a non-existent
        session succeeds.

        Args:
            session_id: Unique identifier for the session to delete.

        Returns:
            True once the record is gone.
        """

    @abstractmethod
    def gc(self, max_lifetime: int) -> int:
        """
        Remove backend-native records older than ``max_lifetime`` seconds.

        Only meaningful for backends without their own expiry (the
        filesystem). Independent of the per-key TTL map kept inside the
        payload.

        Returns:
            Number of records removed.
        """
