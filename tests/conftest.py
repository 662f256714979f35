"""
Shared pytest fixtures and configuration for all tests.
"""
import base64
import os
from typing import Callable

import pytest
from unittest.mock import MagicMock

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

from session.backends.memory import MemoryBackend
from session.encryption import EncryptionKeySet
from session.store import Store

# Configure Hypothesis profiles for different environments
# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,  # Print failing examples for debugging
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,  # Reproducible results in CI
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

# Load profile from environment variable HYPOTHESIS_PROFILE, default to "default"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


SESSION_ID = "0123456789abcdef0123456789abcdef"
OTHER_SESSION_ID = "fedcba9876543210fedcba9876543210"


class FakeClock:
    """Controllable time source for TTL and cookie expiry tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingBackend(MemoryBackend):
    """Memory backend that records every call it receives."""

    def __init__(self):
        super().__init__()
        self.reads = 0
        self.writes = 0
        self.destroys = 0
        self.written: list = []

    def read(self, session_id: str) -> str:
        self.reads += 1
        return super().read(session_id)

    def write(self, session_id: str, payload: str) -> bool:
        self.writes += 1
        self.written.append((session_id, payload))
        return super().write(session_id, payload)

    def destroy(self, session_id: str) -> bool:
        self.destroys += 1
        return super().destroy(session_id)


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at a fixed unix time."""
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    """Empty in-memory backend."""
    return MemoryBackend()


@pytest.fixture
def counting_backend() -> CountingBackend:
    """In-memory backend that counts reads and writes."""
    return CountingBackend()


@pytest.fixture
def make_store(backend, clock) -> Callable[..., Store]:
    """Factory for started Stores sharing the same backend and clock."""
    def _make(session_id: str = SESSION_ID, start: bool = True, **kwargs) -> Store:
        kwargs.setdefault("clock", clock)
        store = Store(kwargs.pop("backend", backend), session_id, **kwargs)
        if start:
            store.start()
        return store

    return _make


@pytest.fixture
def hex_key() -> str:
    """Encryption key as 64 hex characters."""
    return "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


@pytest.fixture
def base64_key() -> str:
    """A different encryption key, base64-encoded."""
    return base64.b64encode(bytes(range(32, 64))).decode("ascii")


@pytest.fixture
def keyset(hex_key) -> EncryptionKeySet:
    """Key set with a single primary key."""
    return EncryptionKeySet.from_config(hex_key)


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock Redis client for unit tests."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.set.return_value = True
    mock.setex.return_value = True
    mock.delete.return_value = 1
    mock.ping.return_value = True
    return mock
