"""
================================================================================
FORUM DATA STORE - STORAGE BACKENDS
================================================================================

@file        backends.py
@description Key/value storage backends for the forum store
@version     1.0.0

MODULE PURPOSE
================================================================================
Every repository reads and writes through one small interface:

    get(key)          -> value or None
    set(key, value)   -> True
    add(key, value)   -> True, or False when the key already exists
    delete(key)       -> True if something was removed
    keys(prefix)      -> sorted list of keys
    atomic()          -> context manager grouping several writes

Two interchangeable implementations:

1. DatabaseBackend ("durable")
   - One StoredRecord row per key, JSON value column
   - Survives restarts; SQLite in development, PostgreSQL in production
   - DatabaseError is wrapped in BackendUnavailable

2. MemoryBackend ("fallback")
   - Plain dict guarded by a lock, lives as long as the process
   - Used in tests and when the database cannot be reached
   - Data is lost on restart (documented degradation)

BACKEND SELECTION
================================================================================
select_backend("auto") probes the database once and falls back to memory
when it is unreachable. The choice is fixed for the life of the store and
reported by ForumStore.get_system_status() as storage_type.

================================================================================
"""

import copy
import logging
import threading
from contextlib import contextmanager

from django.db import DatabaseError, IntegrityError, connections, transaction

from .exceptions import BackendUnavailable
from .models import StoredRecord


logger = logging.getLogger(__name__)

DURABLE = "durable"
FALLBACK = "fallback"


# ============================================================================
# BACKEND INTERFACE
# ============================================================================

class StorageBackend:
    """
    Minimal key/value contract shared by all backends.

    Values are opaque JSON-compatible structures; the backend never looks
    inside them.
    """

    name = "abstract"
    storage_type = FALLBACK

    def get(self, key, for_update=False):
        raise NotImplementedError

    def set(self, key, value):
        raise NotImplementedError

    def add(self, key, value):
        """Insert-only write; False when ``key`` is already taken."""
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def keys(self, prefix=""):
        raise NotImplementedError

    @contextmanager
    def atomic(self):
        yield

    def delete_prefix(self, prefix):
        removed = 0
        for key in self.keys(prefix):
            if self.delete(key):
                removed += 1
        return removed

    def get_many(self, keys):
        return {key: self.get(key) for key in keys}

    def describe(self):
        return {"name": self.name, "storage_type": self.storage_type}


# ============================================================================
# DURABLE BACKEND (DJANGO ORM)
# ============================================================================

class DatabaseBackend(StorageBackend):
    """
    Durable backend storing each key as a StoredRecord row.

    Attributes:
        using (str): Django database alias

    Error Handling:
        Any DatabaseError (connection refused, missing table, timeout) is
        logged and re-raised as BackendUnavailable so callers can answer
        with a 5xx-equivalent response.
    """

    name = "database"
    storage_type = DURABLE

    def __init__(self, using="default"):
        self.using = using

    def _records(self):
        return StoredRecord.objects.using(self.using)

    @contextmanager
    def _guard(self, operation, key):
        try:
            yield
        except DatabaseError as exc:
            logger.error(f"Database backend {operation} failed for {key!r}: {exc}")
            raise BackendUnavailable(f"Storage {operation} failed", key=key) from exc

    def get(self, key, for_update=False):
        with self._guard("get", key):
            records = self._records()
            # select_for_update is only legal inside a transaction
            if for_update and transaction.get_connection(self.using).in_atomic_block:
                records = records.select_for_update()
            return records.filter(key=key).values_list("value", flat=True).first()

    def get_many(self, keys):
        keys = list(keys)
        with self._guard("get_many", keys[:1]):
            rows = dict(self._records().filter(key__in=keys).values_list("key", "value"))
        return {key: rows.get(key) for key in keys}

    def set(self, key, value):
        with self._guard("set", key):
            self._records().update_or_create(key=key, defaults={"value": value})
        return True

    def add(self, key, value):
        with self._guard("add", key):
            try:
                # Savepoint, so a lost race leaves the outer transaction usable
                with transaction.atomic(using=self.using):
                    self._records().create(key=key, value=value)
            except IntegrityError:
                return False
        return True

    def delete(self, key):
        with self._guard("delete", key):
            deleted, _ = self._records().filter(key=key).delete()
        return deleted > 0

    def delete_prefix(self, prefix):
        with self._guard("delete_prefix", prefix):
            deleted, _ = self._records().filter(key__startswith=prefix).delete()
        return deleted

    def keys(self, prefix=""):
        with self._guard("keys", prefix):
            return list(
                self._records()
                .filter(key__startswith=prefix)
                .order_by("key")
                .values_list("key", flat=True)
            )

    @contextmanager
    def atomic(self):
        with self._guard("transaction", None):
            with transaction.atomic(using=self.using):
                yield

    def probe(self):
        """Raise BackendUnavailable unless the table can be queried."""
        with self._guard("probe", None):
            connections[self.using].ensure_connection()
            self._records().exists()
        return True

    def describe(self):
        info = super().describe()
        info["database"] = connections[self.using].vendor
        return info


# ============================================================================
# FALLBACK BACKEND (IN-PROCESS)
# ============================================================================

class MemoryBackend(StorageBackend):
    """
    In-process backend used for tests and as the database fallback.

    Values are deep-copied on the way in and out, so a reader never sees
    a record while another thread is still mutating its own copy.
    """

    name = "memory"
    storage_type = FALLBACK

    def __init__(self, initial=None):
        self._data = copy.deepcopy(initial) if initial else {}
        self._lock = threading.RLock()

    def get(self, key, for_update=False):
        with self._lock:
            value = self._data.get(key)
        return copy.deepcopy(value)

    def set(self, key, value):
        value = copy.deepcopy(value)
        with self._lock:
            self._data[key] = value
        return True

    def add(self, key, value):
        value = copy.deepcopy(value)
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
        return True

    def delete(self, key):
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix=""):
        with self._lock:
            return sorted(key for key in self._data if key.startswith(prefix))


# ============================================================================
# BACKEND SELECTION
# ============================================================================

def select_backend(mode="auto", using="default"):
    """
    Build the backend named by ``mode``.

    Args:
        mode: "database", "memory" or "auto"
        using: Django database alias for the durable backend

    Returns:
        StorageBackend: The chosen backend

    Flow ("auto"):
        1. Probe the database (connection + StoredRecord table)
        2. On success use DatabaseBackend
        3. On BackendUnavailable log a warning and use MemoryBackend
    """
    if mode == "memory":
        return MemoryBackend()
    if mode == "database":
        return DatabaseBackend(using=using)

    backend = DatabaseBackend(using=using)
    try:
        backend.probe()
    except BackendUnavailable as exc:
        logger.warning(f"Durable forum storage unavailable ({exc.message}); using in-memory fallback")
        return MemoryBackend()
    logger.info("Forum store using durable database backend")
    return backend
