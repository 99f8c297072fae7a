"""
Tests for categories, posts, replies, meets and settings.

Tests:
- Post creation, ordering, visibility and moderation toggles
- Locked posts refuse replies; reply counters follow creates and deletes
- Soft delete cascade and the deleted log
- Permission checks on deletion
- Category deletion guard
- Settings defaults, shallow update and reset
"""

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from forum.exceptions import DuplicateKey, NotFound, PostLocked


@pytest.fixture
def post(store, member):
    return store.posts.add_post(
        "general", "First thread", "Hello forum", author_id=member["id"], tags=["hello"],
    ).unwrap()


class TestCategories:
    def test_add_and_order(self, store):
        store.categories.add_category("Announcements", order=0, category_id="news")

        assert [category["id"] for category in store.categories.list()] == ["news", "general"]

    def test_delete_refused_while_posts_exist(self, store, post):
        assert store.categories.delete("general") is False
        assert store.categories.get_by_id("general") is not None

    def test_delete_empty_category(self, store):
        store.categories.add_category("Empty", category_id="empty")

        assert store.categories.delete("empty") is True
        assert store.categories.get_by_id_with_deleted("empty")["deleted_at"]

    def test_existing_id_is_refused(self, sample_store):
        result = sample_store.categories.add({"id": "general", "name": "Hijacked"})

        assert isinstance(result.error, DuplicateKey)
        assert result.error.context["field"] == "id"
        assert sample_store.categories.get_by_id("general")["name"] != "Hijacked"

    def test_delete_and_new_post_do_not_interleave(self, make_store, pausing_backend):
        forum_store = make_store(backend=pausing_backend)
        forum_store.categories.add_category("Short lived", category_id="brief").unwrap()
        pausing_backend.pause_on = lambda method, key: method == "keys" and key == "forum:posts:"

        with ThreadPoolExecutor(max_workers=2) as pool:
            deleting = pool.submit(forum_store.categories.delete, "brief")
            assert pausing_backend.paused.wait(timeout=5)
            posting = pool.submit(forum_store.posts.add_post, "brief", "Late", "Too late")
            time.sleep(0.05)
            pausing_backend.release.set()

            assert deleting.result(timeout=5) is True
            assert isinstance(posting.result(timeout=5).error, NotFound)

        assert forum_store.posts.list(category_id="brief", include_hidden=True) == []


class TestPosts:
    """Tests for PostRepository."""

    def test_add_post_resolves_author(self, store, member, post):
        assert post["author_email"] == member["email"]
        assert post["author"] == "Member"
        assert post["replies"] == 0
        assert post["is_locked"] is False

    def test_unknown_category(self, store, member):
        result = store.posts.add_post("nope", "Title", "Body", author_id=member["id"])

        assert isinstance(result.error, NotFound)
        assert result.error.status == 404

    def test_pinned_first_then_newest(self, store, clock, member):
        older = store.posts.add_post("general", "Old", "x", author_id=member["id"]).value
        clock.advance(minutes=1)
        newer = store.posts.add_post("general", "New", "x", author_id=member["id"]).value
        clock.advance(minutes=1)
        pinned = store.posts.add_post("general", "Rules", "x", is_pinned=True).value

        assert [p["id"] for p in store.posts.list()] == [pinned["id"], newer["id"], older["id"]]

    def test_hidden_posts_filtered(self, store, post):
        store.posts.set_hidden(post["id"])

        assert store.posts.list() == []
        assert [p["id"] for p in store.posts.list(include_hidden=True)] == [post["id"]]

    def test_toggles(self, store, post):
        assert store.posts.toggle_hidden(post["id"])["is_hidden"] is True
        assert store.posts.toggle_hidden(post["id"])["is_hidden"] is False
        assert store.posts.toggle_locked(post["id"])["is_locked"] is True
        assert store.posts.toggle_locked("post-missing") is None

    def test_list_by_category(self, sample_store):
        posts = sample_store.posts.list(category_id="installation-help")

        assert [p["id"] for p in posts] == ["post-2"]

    def test_increment_views(self, store, post):
        store.posts.increment_views(post["id"])
        store.posts.increment_views(post["id"])

        assert store.posts.get_by_id(post["id"])["views"] == 2

    def test_update_refreshes_updated_at(self, store, clock, post):
        clock.advance(minutes=5)

        updated = store.posts.update(post["id"], title="Edited")

        assert updated["title"] == "Edited"
        assert updated["updated_at"] == clock().isoformat()
        assert updated["created_at"] == post["created_at"]


class TestReplies:
    """Tests for ReplyRepository."""

    def test_reply_bumps_counter(self, store, member, post):
        reply = store.replies.add_reply(post["id"], "Welcome!", author_id=member["id"]).unwrap()

        assert reply["post_id"] == post["id"]
        assert store.posts.get_by_id(post["id"])["replies"] == 1
        assert store.replies.list_for_post(post["id"]) == [reply]

    def test_locked_post_refuses_reply(self, store, member, post):
        store.posts.set_locked(post["id"])

        result = store.replies.add_reply(post["id"], "Too late", author_id=member["id"])

        assert isinstance(result.error, PostLocked)
        assert store.replies.list_for_post(post["id"]) == []

    def test_unknown_post(self, store):
        assert isinstance(store.replies.add_reply("post-missing", "x").error, NotFound)

    def test_unknown_parent_reply(self, store, post):
        result = store.replies.add_reply(post["id"], "x", parent_reply_id="reply-missing")

        assert isinstance(result.error, NotFound)

    def test_delete_reply_decrements_counter(self, store, member, post):
        reply = store.replies.add_reply(post["id"], "Oops", author_id=member["id"]).unwrap()

        assert store.replies.delete(reply["id"]) is True
        assert store.posts.get_by_id(post["id"])["replies"] == 0
        assert store.replies.list_deleted()[0]["id"] == reply["id"]


class TestDeletion:
    """Soft delete, cascade and permissions."""

    def test_post_delete_cascades_to_replies(self, sample_store):
        assert sample_store.posts.delete("post-1") is True

        assert sample_store.posts.get_by_id("post-1") is None
        assert sample_store.replies.list_for_post("post-1") == []
        deleted_ids = {reply["id"] for reply in sample_store.replies.list_deleted()}
        assert deleted_ids == {"reply-1", "reply-2"}
        assert sample_store.posts.get_by_id_with_deleted("post-1")["title"]

    def test_list_with_deleted(self, sample_store):
        sample_store.posts.delete("post-2")

        ids = {p["id"] for p in sample_store.posts.list_with_deleted()}
        assert ids == {"post-1", "post-2"}

    def test_stranger_cannot_delete(self, store, post):
        store.users.add_user("stranger", "stranger@example.com", "pw")

        assert store.posts.delete(post["id"], actor_email="stranger@example.com") is False
        assert store.posts.get_by_id(post["id"]) is not None

    def test_author_and_admin_can_delete(self, store, member, post):
        second = store.posts.add_post("general", "Second", "x", author_id=member["id"]).value

        assert store.posts.delete(post["id"], actor_email="member@example.com") is True
        assert store.posts.delete(second["id"], actor_email="admin@store.com") is True

    def test_moderator_can_delete_reply(self, store, member, post):
        moderator = store.users.add_user("mod", "mod@example.com", "pw", role="moderator").value
        reply = store.replies.add_reply(post["id"], "spam", author_id=member["id"]).value

        assert store.can_moderate(moderator["email"], member["email"])
        assert store.replies.delete(reply["id"], actor_email="mod@example.com") is True

    def test_bulk_delete(self, sample_store):
        assert sample_store.posts.bulk_delete(["post-1", "post-2", "post-missing"]) == 2
        assert sample_store.posts.list(include_hidden=True) == []

    def test_delete_unknown(self, store):
        assert store.posts.delete("post-missing") is False


class TestMeets:
    def test_add_meet(self, store):
        meet = store.meets.add_meet("Workshop", capacity=3, date="2026-04-01T18:00:00+00:00").unwrap()

        assert meet["attendees"] == []
        assert meet["status"] == "upcoming"
        assert store.meets.get_by_id(meet["id"])["capacity"] == 3

    def test_negative_capacity_rejected(self, store):
        with pytest.raises(ValueError):
            store.meets.add_meet("Broken", capacity=-1)

    def test_attendees_not_updatable_directly(self, store):
        meet = store.meets.add_meet("Workshop").unwrap()

        with pytest.raises(ValueError):
            store.meets.update(meet["id"], attendees=[{"user_id": "x"}])

    def test_existing_id_keeps_attendees(self, sample_store):
        sample_store.rsvp.rsvp("meet-1", "demo-user-1")

        result = sample_store.meets.add({"id": "meet-1", "title": "Replacement"})

        assert result.error.context["field"] == "id"
        assert sample_store.rsvp.is_attending("meet-1", "demo-user-1")

    def test_attendees_cannot_be_preloaded(self, store):
        meet = store.meets.add_meet("Workshop", attendees=[{"user_id": "x"}]).unwrap()

        assert meet["attendees"] == []

    def test_upcoming_only(self, store):
        store.meets.add_meet("Past", status="completed")
        store.meets.add_meet("Next")

        assert [meet["title"] for meet in store.meets.list(upcoming_only=True)] == ["Next"]


class TestSettings:
    """Tests for the settings singletons."""

    def test_defaults_seeded(self, store):
        site = store.settings.get("site")

        assert site["general"]["forum_name"] == "Community Forum"
        assert site["last_updated"] is not None

    def test_update_is_shallow(self, store):
        updated = store.settings.update("site", general={"forum_name": "Makers"})

        assert updated["general"] == {"forum_name": "Makers"}
        assert updated["moderation"]["max_post_length"] == 5000

    def test_reset(self, store):
        store.settings.update("rewards", points_per_post=50)

        assert store.settings.reset("rewards")["points_per_post"] == 10

    def test_unknown_settings_name(self, store):
        with pytest.raises(KeyError):
            store.settings.get("payments")

    def test_list_all(self, store):
        assert set(store.settings.list()) == {"rewards", "site"}


class TestGenericAdd:
    """add(record) routes to the typed constructors."""

    def test_add_user_record(self, store):
        result = store.users.add({"username": "demo", "email": "demo@x.com", "password": "pw"})

        assert result.ok
        assert store.users.get_by_username("demo")["password"] != "pw"
        duplicate = store.users.add({"username": "demo", "email": "other@x.com", "password": "pw"})
        assert duplicate.error.context["field"] == "username"

    def test_add_category_and_meet_records(self, store):
        category = store.categories.add({"id": "help", "name": "Help"}).unwrap()
        meet = store.meets.add({"title": "Launch", "capacity": 10}).unwrap()

        assert category["id"] == "help"
        assert meet["id"].startswith("meet-")
        assert meet["attendees"] == []

    def test_add_post_and_reply_records(self, store, member):
        post = store.posts.add({"category_id": "general", "title": "T", "content": "B"}).unwrap()
        reply = store.replies.add({"post_id": post["id"], "content": "R", "author_id": member["id"]})

        assert reply.ok
        assert store.posts.get_by_id(post["id"])["replies"] == 1
