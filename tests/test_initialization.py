"""
Tests for the initialization controller.

Tests:
- Seeding contents and the hashed-only password guarantee
- Idempotent initialize() and the persisted marker
- Single-flight initialization under concurrent callers
- Backend failure leaves the store UNINITIALIZED
- force_reinitialize, clear_all_data and the password repair
- LAZY_INIT switched off
"""

import threading
import time

import pytest

from forum.backends import MemoryBackend
from forum.exceptions import BackendUnavailable, NotInitialized
from forum.store import INITIALIZED_KEY, InitState


class SlowBackend(MemoryBackend):
    def set(self, key, value):
        time.sleep(0.001)
        return super().set(key, value)


class FlakyBackend(MemoryBackend):
    failing = True

    def set(self, key, value):
        if self.failing:
            raise BackendUnavailable("Storage set failed", key=key)
        return super().set(key, value)


class TestSeeding:
    """Tests for the seed data written by initialize()."""

    def test_seeds_accounts_settings_and_general_category(self, store):
        assert store.users.get_by_email("admin@store.com")["role"] == "admin"
        assert store.users.get_by_username("new_member") is not None
        assert [category["id"] for category in store.categories.list()] == ["general"]
        assert store.settings.get("rewards")["points_per_post"] == 10
        assert store.posts.list() == []
        assert store.meets.list() == []

    def test_sample_groups(self, sample_store):
        category_ids = {category["id"] for category in sample_store.categories.list()}

        assert {"general", "installation-help", "project-showcase", "troubleshooting"} <= category_ids
        assert len(sample_store.posts.list()) == 2
        assert len(sample_store.replies.list_for_post("post-1")) == 2
        assert sample_store.posts.get_by_id("post-1")["replies"] == 2
        assert len(sample_store.meets.list(upcoming_only=True)) == 2

    def test_no_plaintext_password_is_stored(self, store):
        for user in store.users.list():
            assert store.hasher.is_digest(user["password"])
            assert user["password"] not in ("admin123", "demo123")

    def test_seed_passwords_verify(self, store):
        assert store.users.authenticate("admin@store.com", "admin123") is not None
        assert store.users.authenticate("new_member", "demo123") is not None

    def test_configured_admin_credentials(self, make_store):
        custom = make_store(admin_email="root@forum.test", admin_password="0pen-sesame")
        custom.initialize()

        assert custom.users.authenticate("root@forum.test", "0pen-sesame") is not None
        assert custom.users.get_by_email("admin@store.com") is None


class TestInitializeLifecycle:
    """Tests for state transitions and idempotency."""

    def test_starts_uninitialized(self, make_store):
        fresh = make_store()

        assert fresh.state is InitState.UNINITIALIZED
        assert fresh.is_initialized() is False

    def test_initialize_twice_leaves_identical_contents(self, store):
        before = store.get_all_data_with_deleted()

        assert store.initialize() is True
        assert store.get_all_data_with_deleted() == before
        assert store.seed_runs == 1

    def test_persisted_marker_prevents_reseed(self, make_store):
        backend = MemoryBackend()
        first = make_store(backend=backend)
        first.initialize()
        first.users.add_user("survivor", "survivor@example.com", "pw")
        first.posts.add_post("general", "Kept", "Still here")

        second = make_store(backend=backend)
        assert second.initialize() is True

        assert second.seed_runs == 0
        assert second.is_initialized()
        assert second.users.get_by_username("survivor") is not None
        assert len(second.posts.list()) == 1

    def test_marker_written(self, store):
        marker = store.backend.get(INITIALIZED_KEY)

        assert marker["include_sample_groups"] is False

    def test_concurrent_initialize_seeds_once(self, make_store):
        slow = make_store(backend=SlowBackend())
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(slow.initialize())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == [True] * 8
        assert slow.seed_runs == 1
        assert slow.state is InitState.INITIALIZED

    def test_backend_failure_leaves_uninitialized(self, make_store):
        backend = FlakyBackend()
        flaky = make_store(backend=backend)

        assert flaky.initialize() is False
        assert flaky.state is InitState.UNINITIALIZED
        assert isinstance(flaky.last_error, BackendUnavailable)
        assert backend.get(INITIALIZED_KEY) is None

        backend.failing = False
        assert flaky.initialize() is True
        assert flaky.state is InitState.INITIALIZED
        assert flaky.last_error is None

    def test_lazy_init_on_first_write(self, make_store):
        lazy = make_store()

        lazy.users.add_user("early", "early@example.com", "pw").unwrap()

        assert lazy.is_initialized()
        assert lazy.users.get_by_email("admin@store.com") is not None

    def test_lazy_init_failure_raises_backend_error(self, make_store):
        flaky = make_store(backend=FlakyBackend())

        with pytest.raises(BackendUnavailable):
            flaky.users.add_user("early", "early@example.com", "pw")


class TestLazyInitDisabled:
    """With LAZY_INIT off, writes before initialize() are refused."""

    def test_write_raises_not_initialized(self, make_store):
        strict = make_store(lazy_init=False)

        with pytest.raises(NotInitialized):
            strict.users.add_user("early", "early@example.com", "pw")

    def test_read_sees_empty_store(self, make_store):
        strict = make_store(lazy_init=False)

        assert strict.users.list() == []
        assert strict.state is InitState.UNINITIALIZED


class TestForceReinitialize:
    """Tests for the destructive reset paths."""

    def test_force_reinitialize_wipes_deleted_log(self, sample_store):
        sample_store.posts.delete("post-1")
        sample_store.users.add_user("temp", "temp@example.com", "pw")
        assert sample_store.posts.list_deleted()

        assert sample_store.force_reinitialize() is True

        assert sample_store.posts.list_deleted() == []
        assert sample_store.replies.list_deleted() == []
        assert sample_store.users.get_by_username("temp") is None
        assert sample_store.posts.list() == []
        assert sample_store.seed_runs == 2

    def test_clear_all_data(self, store):
        assert store.clear_all_data() is True

        assert store.state is InitState.UNINITIALIZED
        assert store.backend.keys("forum:") == []

    def test_clear_then_lazy_reseed(self, store):
        store.clear_all_data()

        assert store.users.get_by_username("forum_admin") is not None
        assert store.is_initialized()


class TestPasswordRepair:
    """Tests for force_reinitialize_with_hashed_passwords()."""

    def test_rehashes_plaintext_passwords(self, store, member):
        legacy = store.users.get_by_id(member["id"])
        legacy["password"] = "legacy-plain"
        store.users._save(legacy)

        report = store.force_reinitialize_with_hashed_passwords()

        assert member["id"] in report["rehashed"]
        repaired = store.users.get_by_id(member["id"])
        assert store.hasher.is_digest(repaired["password"])
        assert store.users.authenticate("member", "legacy-plain") is not None

    def test_resets_seed_accounts(self, store):
        admin = store.users.get_by_email("admin@store.com")
        store.users.set_password(admin["id"], "changed")

        report = store.force_reinitialize_with_hashed_passwords()

        assert admin["id"] in report["reset"]
        assert store.users.authenticate("admin@store.com", "admin123") is not None

    def test_restores_missing_seed_records(self, store):
        store.backend.delete(store.settings.key("site"))

        report = store.force_reinitialize_with_hashed_passwords()

        assert report["seeded"] == 1
        assert store.backend.get(store.settings.key("site")) is not None


class TestSystemStatus:
    """get_system_status() reports without changing anything."""

    def test_status_of_initialized_store(self, store):
        status = store.get_system_status()

        assert status["is_initialized"] is True
        assert status["state"] == "initialized"
        assert status["storage_type"] == "fallback"
        assert status["persisted_marker"] is True
        assert status["stats"]["users"] == 4

    def test_status_does_not_initialize(self, make_store):
        fresh = make_store()

        status = fresh.get_system_status()

        assert status["is_initialized"] is False
        assert status["stats"]["users"] == 0
        assert fresh.state is InitState.UNINITIALIZED
        assert fresh.backend.keys("forum:") == []


class TestLifecycleAgainstMutations:
    """Lifecycle operations and ordinary mutations never wait on each other forever."""

    def test_force_reinitialize_while_a_like_is_running(self, make_store, pausing_backend):
        forum_store = make_store(backend=pausing_backend)
        assert forum_store.initialize(include_sample_groups=True)
        likes_before = forum_store.posts.get_by_id("post-1")["likes"]
        pausing_backend.pause_on = lambda method, key: method == "set" and key == "forum:posts:post-1"
        outcome = {}

        def like():
            outcome["post"] = forum_store.posts.like("post-1", user_email="newmember@example.com")

        def reset():
            outcome["reset"] = forum_store.force_reinitialize()

        liker = threading.Thread(target=like, daemon=True)
        liker.start()
        assert pausing_backend.paused.wait(timeout=5)
        resetter = threading.Thread(target=reset, daemon=True)
        resetter.start()
        time.sleep(0.05)
        pausing_backend.release.set()
        liker.join(timeout=5)
        resetter.join(timeout=5)

        assert not liker.is_alive()
        assert not resetter.is_alive()
        assert outcome["post"]["likes"] == likes_before + 1
        assert outcome["reset"] is True
        assert forum_store.state is InitState.INITIALIZED
        assert forum_store.posts.list() == []

    def test_interrupted_seed_restores_index_keys(self, make_store):
        backend = FlakyBackend()
        flaky = make_store(backend=backend)
        assert flaky.initialize() is False
        # Record written, index keys lost
        backend.delete(flaky.users.username_key("forum_admin"))
        backend.delete(flaky.users.email_key("admin@store.com"))

        backend.failing = False
        assert flaky.initialize() is True

        assert flaky.users.get_by_username("forum_admin")["id"] == "admin-user"
        assert flaky.users.get_by_email("admin@store.com")["id"] == "admin-user"
        assert not flaky.users.add_user("forum_admin", "other@example.com", "pw").ok
        assert flaky.rewards.get("admin-user") is not None
