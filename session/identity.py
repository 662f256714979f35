"""
Session identifier generation and validation.

A session id is 16 cryptographically random bytes, hex-encoded to 32
lowercase characters. Ids supplied by application code are validated
strictly; ids arriving from a client (the session cookie) are untrusted
and silently replaced when malformed, which shuts out id injection and
path traversal through the cookie value.
"""

import re
import secrets
from typing import Any, Optional

from errors.exceptions import InvalidIdentity

ID_BYTES = 16
ID_PATTERN = re.compile(r"[a-f0-9]{32}")


def generate_id() -> str:
    """Return a fresh random session id."""
    return secrets.token_hex(ID_BYTES)


def is_valid_id(value: Any) -> bool:
    """Check that ``value`` is a string of exactly 32 lowercase hex chars."""
    return isinstance(value, str) and ID_PATTERN.fullmatch(value) is not None


def resolve_id(explicit: Optional[str] = None, inbound: Optional[str] = None) -> str:
    """
    Decide which session id a new Store should use.

    Args:
        explicit: Id chosen by application code. Must be valid.
        inbound: Untrusted candidate, typically the cookie value.

    Returns:
        The explicit id, the inbound id if it is well formed, or a newly
        generated id.

    Raises:
        InvalidIdentity: If an explicit id is given and is malformed.
    """
    if explicit is not None:
        if not is_valid_id(explicit):
            raise InvalidIdentity(
                "Invalid session id.",
                details={"reason": "session id must be 32 lowercase hex characters"},
            )
        return explicit

    if is_valid_id(inbound):
        return inbound

    return generate_id()
