"""Tests for the statistics aggregator."""


class TestUserStats:
    def test_sample_store(self, sample_store):
        stats = sample_store.stats.user_stats()

        assert stats["total_users"] == 4
        assert stats["active_users"] == 4
        # forum_admin (today) and new_member (1 day old)
        assert stats["recent_registrations"] == 2
        assert stats["recently_active"] == 4
        assert stats["posting_users"] == 1
        assert stats["engagement_rate"] == 25.0
        assert stats["average_posts_per_user"] == 0.5

    def test_inactive_and_roles(self, store, member):
        store.users.update(member["id"], is_active=False)

        stats = store.stats.user_stats()

        assert stats["inactive_users"] == 1
        assert stats["users_by_role"] == {"admin": 1, "user": 4}

    def test_recent_windows_move_with_clock(self, sample_store, clock):
        clock.advance(days=40)

        stats = sample_store.stats.user_stats()

        assert stats["recent_registrations"] == 0
        assert stats["recently_active"] == 0

    def test_engagement_counts_distinct_authors(self, store, member):
        for title in ("one", "two", "three"):
            store.posts.add_post("general", title, "x", author_email="member@example.com")

        stats = store.stats.user_stats()

        assert stats["posting_users"] == 1
        assert stats["engagement_rate"] == 20.0
        assert stats["average_posts_per_user"] == 0.6

    def test_empty_store(self, make_store):
        stats = make_store().stats.user_stats()

        assert stats["total_users"] == 0
        assert stats["engagement_rate"] == 0.0


class TestForumStats:
    def test_counts(self, sample_store):
        sample_store.posts.set_hidden("post-2")
        sample_store.rsvp.rsvp("meet-1", "demo-user-1")

        stats = sample_store.stats.forum_stats()

        assert stats["categories"] == 4
        assert stats["posts"] == 2
        assert stats["visible_posts"] == 1
        assert stats["hidden_posts"] == 1
        assert stats["replies"] == 3
        assert stats["meets"] == 2
        assert stats["rsvps"] == 1

    def test_deleted_counts(self, sample_store):
        sample_store.posts.delete("post-1")

        stats = sample_store.stats.forum_stats()

        assert stats["posts"] == 1
        assert stats["deleted_posts"] == 1
        assert stats["deleted_replies"] == 2

    def test_category_stats(self, sample_store):
        by_id = {entry["category_id"]: entry for entry in sample_store.stats.category_stats()}

        assert by_id["general"]["posts"] == 1
        assert by_id["general"]["replies"] == 2
        assert by_id["troubleshooting"]["posts"] == 0
