"""
Filesystem session backend.

Each session is stored as one file named ``<prefix><id>`` inside a
directory. Writes go to a temporary file in the same directory that is
then renamed over the target, so a reader never sees a partial record.
Reads take an advisory shared lock (POSIX ``flock``). This gives write
atomicity only; concurrent writers still resolve as last-write-wins.
"""

import fcntl
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Union

from session.backends.base import SessionBackend

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


class FileBackend(SessionBackend):
    """
    Stores session payloads as files on local disk.

    Attributes:
        directory: Directory holding the session files (created if missing)
        prefix: File name prefix for session files (default: "sess_")
    """

    def __init__(self, directory: Union[str, Path], prefix: str = "sess_"):
        self.directory = Path(directory)
        self.prefix = prefix
        self.directory.mkdir(parents=True, exist_ok=True)

    def _get_path(self, session_id: str) -> Path:
        return self.directory / f"{self.prefix}{session_id}"

    def read(self, session_id: str) -> str:
        path = self._get_path(session_id)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                fcntl.flock(fh.fileno(), fcntl.LOCK_SH)
                try:
                    return fh.read()
                finally:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return ""

    def write(self, session_id: str, payload: str) -> bool:
        path = self._get_path(session_id)
        fd, temp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(temp_name, path)
        except BaseException:
            # Leave no stray temp file behind on a failed write
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
        return True

    def destroy(self, session_id: str) -> bool:
        try:
            self._get_path(session_id).unlink()
        except FileNotFoundError:
            pass
        return True

    def gc(self, max_lifetime: int) -> int:
        """Delete session files not modified within ``max_lifetime`` seconds."""
        cutoff = time.time() - max_lifetime
        removed = 0

        for path in self.directory.glob(f"{self.prefix}*"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                # Destroyed by another process between glob and unlink
                continue

        if removed:
            logger.info(
                "Removed %d stale session files",
                removed,
                extra={"directory": str(self.directory), "max_lifetime": max_lifetime},
            )
        return removed
