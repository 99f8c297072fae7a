"""
================================================================================
FORUM DATA STORE - STORE & INITIALIZATION CONTROLLER
================================================================================

@file        store.py
@description The process-wide forum store and its initialization lifecycle
@version     1.0.0

MODULE PURPOSE
================================================================================
ForumStore owns every piece of durable forum state. It is built once per
process (see ForumConfig.get_store) from injected configuration and handed
to request handlers explicitly (request.forum_store).

    store = ForumStore(backend=MemoryBackend(), config=StoreConfig())
    store.initialize(include_sample_groups=True)
    store.users.add_user("demo2", "demo2@example.com", "s3cret")

COMPONENTS
================================================================================
store.users / categories / posts / replies / meets / settings
    Entity repositories (repositories.py)
store.tokens    Password-reset token lifecycle (tokens.py)
store.rsvp      Meet capacity and attendee list (rsvp.py)
store.rewards   Points ledger and coupons (rewards.py)
store.stats     Derived read-only statistics (stats.py)

INITIALIZATION STATE MACHINE
================================================================================
    UNINITIALIZED --initialize()--> INITIALIZING --seeded--> INITIALIZED
          ^                              |
          +-------- backend failure -----+

    force_reinitialize(): any state -> INITIALIZING (wipe + seed) -> INITIALIZED
    clear_all_data():     any state -> UNINITIALIZED (wipe, no seed)

The "forum:meta:initialized" marker is written last, inside the same
backend transaction as the seed data, so a durable store is never marked
initialized while half-seeded. A later process that finds the marker skips
seeding.

CONCURRENCY
================================================================================
- lock (RLock) serialises every mutation in the process; repositories
  enter it through mutation(), which also opens a backend transaction.
- initialize() and the other lifecycle operations run under the same
  lock and only change state once they hold it, so concurrent first
  callers block until the seeding caller finishes, then see INITIALIZED.
  A mutation that is already running never observes INITIALIZING.
- Cross-process uniqueness (ids, usernames, emails) rests on insert-only
  backend writes, not on the lock.
- Reads take no lock.

================================================================================
"""

import enum
import logging
import threading
from contextlib import contextmanager

from django.utils import timezone

from .backends import select_backend
from .conf import StoreConfig
from .exceptions import BackendUnavailable, NotInitialized
from .hashing import PasswordHasher
from .models import Role
from .repositories import (
    ROOT,
    CategoryRepository,
    MeetRepository,
    PostRepository,
    ReplyRepository,
    SettingsRepository,
    UserRepository,
)
from .rewards import RewardsLedger
from .rsvp import RsvpManager
from .seed import SEED_USERS, seed_store
from .stats import StatsAggregator
from .tokens import TokenManager
from .utils import generate_token, isoformat


logger = logging.getLogger(__name__)

INITIALIZED_KEY = f"{ROOT}:meta:initialized"


class InitState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"


class ForumStore:
    """
    The forum data store.

    Args:
        backend: StorageBackend; selected from config.backend when omitted
        config: StoreConfig (TTLs, RSVP policies, seed credentials)
        hasher: PasswordHasher used by every path that stores a password
        clock: Callable returning an aware datetime (timezone.now)
        token_generator: Callable returning a random reset token string
    """

    def __init__(self, backend=None, config=None, hasher=None, clock=None, token_generator=None):
        self.config = config or StoreConfig()
        self.backend = backend if backend is not None else select_backend(self.config.backend)
        self.hasher = hasher or PasswordHasher()
        self.clock = clock or timezone.now
        self.token_generator = token_generator or generate_token

        self.lock = threading.RLock()
        self._state = InitState.UNINITIALIZED
        self._initializer = None
        self.last_error = None
        self.seed_runs = 0

        self.users = UserRepository(self)
        self.categories = CategoryRepository(self)
        self.posts = PostRepository(self)
        self.replies = ReplyRepository(self)
        self.meets = MeetRepository(self)
        self.settings = SettingsRepository(self)
        self.tokens = TokenManager(self)
        self.rsvp = RsvpManager(self)
        self.rewards = RewardsLedger(self)
        self.stats = StatsAggregator(self)

    def __repr__(self):
        return f"<ForumStore backend={self.backend.name} state={self._state.value}>"

    # ========================================================================
    # TIME & PERMISSIONS
    # ========================================================================

    def now(self):
        return self.clock()

    def timestamp(self):
        return isoformat(self.clock())

    def can_moderate(self, actor_email, author_email=None):
        """True if ``actor_email`` is the author, the configured admin or a moderator."""
        if not actor_email:
            return False
        actor = UserRepository.normalize_email(actor_email)
        if author_email and actor == UserRepository.normalize_email(author_email):
            return True
        if actor == UserRepository.normalize_email(self.config.admin_email):
            return True
        user = self.users.get_by_email(actor)
        return bool(user) and user.get("role") in (Role.ADMIN, Role.MODERATOR)

    # ========================================================================
    # INITIALIZATION CONTROLLER
    # ========================================================================

    @property
    def state(self):
        return self._state

    def is_initialized(self):
        return self._state is InitState.INITIALIZED

    def _initializing_here(self):
        return self._state is InitState.INITIALIZING and self._initializer == threading.get_ident()

    def initialize(self, include_sample_groups=False):
        """
        Bring the store to INITIALIZED, seeding it on first use.

        No-op when already initialized, or when a previous process left the
        durable initialized marker behind.

        Args:
            include_sample_groups: Also seed sample categories, posts and meets

        Returns:
            bool: True on success, False when the backend failed (state
            stays UNINITIALIZED)
        """
        if self._state is InitState.INITIALIZED or self._initializing_here():
            return True
        with self.lock:
            # A concurrent caller may have finished while we waited
            if self._state is InitState.INITIALIZED:
                return True
            return self._run_initialization(include_sample_groups, wipe=False)

    def force_reinitialize(self, include_sample_groups=False):
        """Wipe every collection (deleted log included) and seed again."""
        with self.lock:
            logger.warning("Forum store: forced reinitialization requested")
            return self._run_initialization(include_sample_groups, wipe=True)

    def _run_initialization(self, include_sample_groups, wipe):
        self._state = InitState.INITIALIZING
        self._initializer = threading.get_ident()
        try:
            with self.backend.atomic():
                if wipe:
                    self._wipe()
                marker = self.backend.get(INITIALIZED_KEY)
                if marker is None:
                    written = seed_store(self, include_sample_groups=include_sample_groups)
                    self.seed_runs += 1
                    self.backend.set(INITIALIZED_KEY, {
                        "at": self.timestamp(),
                        "include_sample_groups": bool(include_sample_groups),
                    })
                    logger.info(f"Forum store seeded ({written} records, sample groups={include_sample_groups})")
                else:
                    logger.info(f"Forum store already initialized at {marker.get('at')}")
        except BackendUnavailable as exc:
            self._state = InitState.UNINITIALIZED
            self.last_error = exc
            logger.error(f"Forum store initialization failed: {exc.message}")
            return False
        except Exception:
            self._state = InitState.UNINITIALIZED
            logger.exception("Forum store initialization crashed")
            raise
        finally:
            self._initializer = None

        self._state = InitState.INITIALIZED
        self.last_error = None
        return True

    def ensure_initialized(self, for_write=True):
        """
        Lazy-init convenience called by every repository method.

        With LAZY_INIT on, the first call initializes the store. With it
        off, a write before initialize() raises NotInitialized and reads
        see whatever the backend holds.
        """
        if self._state is InitState.INITIALIZED or self._initializing_here():
            return True
        if self.config.lazy_init:
            if self.initialize(include_sample_groups=self.config.include_sample_groups):
                return True
            raise self.last_error or NotInitialized()
        if for_write:
            raise NotInitialized("Call initialize() before modifying the forum store")
        return False

    def force_reinitialize_with_hashed_passwords(self):
        """
        Repair accounts created before hashing was enforced.

        - Any stored password that is not a recognised digest is hashed
        - Seed accounts get their configured seed password back
        - Missing seed records are written again

        Returns:
            dict: Report with "rehashed", "reset" (user ids) and "seeded"
        """
        report = {"rehashed": [], "reset": [], "seeded": 0}
        with self.lock:
            self._state = InitState.INITIALIZING
            self._initializer = threading.get_ident()
            try:
                with self.backend.atomic():
                    users = self.users
                    for user in users._load_all():
                        stored = user.get("password") or self.token_generator()
                        digest = self.hasher.ensure_digest(stored)
                        if digest != user.get("password"):
                            user["password"] = digest
                            users._save(user)
                            report["rehashed"].append(user["id"])
                    report["seeded"] = seed_store(self, include_sample_groups=False)
                    for seed in SEED_USERS:
                        user = users._load(seed["id"])
                        if user is None:
                            continue
                        user["password"] = self.hasher.hash(self._seed_password(seed))
                        users._save(user)
                        report["reset"].append(user["id"])
                    if self.backend.get(INITIALIZED_KEY) is None:
                        self.backend.set(INITIALIZED_KEY, {"at": self.timestamp(), "include_sample_groups": False})
            except BackendUnavailable as exc:
                self._state = InitState.UNINITIALIZED
                self.last_error = exc
                logger.error(f"Password repair failed: {exc.message}")
                raise
            except Exception:
                self._state = InitState.UNINITIALIZED
                raise
            finally:
                self._initializer = None
            self._state = InitState.INITIALIZED

        logger.warning(
            f"Password repair: {len(report['rehashed'])} rehashed, {len(report['reset'])} seed accounts reset"
        )
        return report

    def _seed_password(self, seed):
        return self.config.admin_password if seed["role"] == Role.ADMIN else self.config.demo_password

    def get_system_status(self):
        """Report state, storage variant and counts without changing anything."""
        status = {
            "is_initialized": self.is_initialized(),
            "state": self._state.value,
            "storage_type": self.backend.storage_type,
            "backend": self.backend.describe(),
            "last_error": self.last_error.message if self.last_error else None,
        }
        try:
            status["persisted_marker"] = self.backend.get(INITIALIZED_KEY) is not None
            status["stats"] = self.stats.forum_stats()
        except BackendUnavailable as exc:
            status["persisted_marker"] = None
            status["stats"] = None
            status["last_error"] = exc.message
        return status

    # ========================================================================
    # MUTATION SCOPE
    # ========================================================================

    @contextmanager
    def mutation(self):
        """Lazy init, store-wide lock and one backend transaction."""
        self.ensure_initialized(for_write=True)
        with self.lock:
            with self.backend.atomic():
                yield

    # ========================================================================
    # WHOLE-STORE OPERATIONS
    # ========================================================================

    def _wipe(self):
        removed = self.backend.delete_prefix(f"{ROOT}:")
        logger.warning(f"Forum store wiped ({removed} keys removed)")
        return removed

    def clear_all_data(self):
        """Hard wipe without reseeding; the store returns to UNINITIALIZED."""
        with self.lock:
            with self.backend.atomic():
                self._wipe()
            self._state = InitState.UNINITIALIZED
        return True

    def get_all_data_with_deleted(self):
        """
        Dump every collection including soft-deleted records.

        For admin/debug recovery tooling. Reads raw backend contents and
        never triggers initialization.
        """
        repositories = (self.users, self.categories, self.posts, self.replies, self.meets)
        data = {}
        for repository in repositories:
            data[repository.collection] = repository._load_all()
            data[f"deleted_{repository.collection}"] = repository._load_all(repository.deleted_prefix)
        data["tokens"] = self.tokens._load_all()
        data["rewards"] = self.rewards._load_all()
        data["settings"] = {
            name: self.backend.get(self.settings.key(name)) for name in self.settings.names()
        }
        data["initialized"] = self.backend.get(INITIALIZED_KEY)
        return data
