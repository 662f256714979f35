"""In-memory session backend."""

from session.backends.base import SessionBackend


class MemoryBackend(SessionBackend):
    """
    Keeps payloads in a dict.

    Suitable for tests and single-process development servers. Records
    are lost when the process exits.
    """

    def __init__(self):
        self._storage: dict[str, str] = {}

    def read(self, session_id: str) -> str:
        return self._storage.get(session_id, "")

    def write(self, session_id: str, payload: str) -> bool:
        self._storage[session_id] = payload
        return True

    def destroy(self, session_id: str) -> bool:
        self._storage.pop(session_id, None)
        return True

    def gc(self, max_lifetime: int) -> int:
        return 0

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._storage

    def __len__(self) -> int:
        return len(self._storage)
