"""
Shared pytest fixtures for the forum store test suite.

Stores built here use the in-memory backend and a controllable clock, so
tests never depend on wall-clock time or on a database unless they ask for
one with ``@pytest.mark.django_db``.
"""

import threading
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.apps import apps

from forum.backends import MemoryBackend
from forum.conf import StoreConfig
from forum.store import ForumStore


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 3, 2, 12, 0, tzinfo=dt_timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class PausingBackend(MemoryBackend):
    """
    Memory backend that parks the first call matching ``pause_on``.

    Lets a test hold one operation in the middle of its mutation while
    another thread starts a competing one.
    """

    def __init__(self):
        super().__init__()
        self.pause_on = None
        self.paused = threading.Event()
        self.release = threading.Event()

    def _checkpoint(self, method, key):
        matcher = self.pause_on
        if matcher is not None and matcher(method, key):
            self.pause_on = None
            self.paused.set()
            self.release.wait(timeout=5)

    def keys(self, prefix=""):
        self._checkpoint("keys", prefix)
        return super().keys(prefix)

    def set(self, key, value):
        self._checkpoint("set", key)
        return super().set(key, value)


@pytest.fixture(autouse=True)
def fast_hashing(settings):
    """MD5 keeps hashing cheap; digests are still real Django digests."""
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_store(clock):
    def factory(backend=None, **options):
        options.setdefault("backend", "memory")
        return ForumStore(
            backend=backend if backend is not None else MemoryBackend(),
            config=StoreConfig(**options),
            clock=clock,
        )
    return factory


@pytest.fixture
def pausing_backend():
    backend = PausingBackend()
    yield backend
    # Never leave a parked thread behind
    backend.release.set()


@pytest.fixture
def store(make_store):
    forum_store = make_store()
    assert forum_store.initialize()
    return forum_store


@pytest.fixture
def sample_store(make_store):
    forum_store = make_store()
    assert forum_store.initialize(include_sample_groups=True)
    return forum_store


@pytest.fixture
def app_store(store):
    """Install ``store`` as the process-wide store for Django-level tests."""
    config = apps.get_app_config("forum")
    previous = config._store
    config.set_store(store)
    yield store
    config.set_store(previous)


@pytest.fixture
def member(store):
    return store.users.add_user("member", "Member@Example.com", "hunter22", name="Member").unwrap()
