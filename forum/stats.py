"""Read-only statistics computed from the current store contents."""

import logging

from .utils import days_ago, parse_timestamp


logger = logging.getLogger(__name__)

NEW_USER_DAYS = 7
ACTIVE_USER_DAYS = 30


class StatsAggregator:
    """
    Derived numbers for dashboards.

    Reads raw backend contents and never initializes or writes, so it is
    safe to call from get_system_status() on an uninitialized store.
    """

    def __init__(self, store):
        self.store = store

    def _since(self, records, field, days):
        cutoff = days_ago(self.store.now(), days)
        count = 0
        for record in records:
            moment = parse_timestamp(record.get(field))
            if moment is not None and moment > cutoff:
                count += 1
        return count

    def user_stats(self):
        """
        Returns:
            dict: total_users, active_users, inactive_users, users_by_role,
            recent_registrations (7 days),
            recently_active (30 days), posting_users, engagement_rate
            (percent of users who posted, 1 decimal) and
            average_posts_per_user (2 decimals)
        """
        store = self.store
        users = store.users._load_all()
        posts = store.posts._load_all()
        total = len(users)

        user_ids = {user["id"] for user in users}
        emails = {store.users.normalize_email(user["email"]): user["id"] for user in users}
        posting = set()
        for post in posts:
            author_id = post.get("author_id")
            if author_id in user_ids:
                posting.add(author_id)
            elif post.get("author_email"):
                owner = emails.get(store.users.normalize_email(post["author_email"]))
                if owner:
                    posting.add(owner)

        active = sum(1 for user in users if user.get("is_active", True))
        by_role = {}
        for user in users:
            role = user.get("role") or "user"
            by_role[role] = by_role.get(role, 0) + 1

        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "users_by_role": by_role,
            "recent_registrations": self._since(users, "created_at", NEW_USER_DAYS),
            "recently_active": self._since(users, "last_active", ACTIVE_USER_DAYS),
            "posting_users": len(posting),
            "engagement_rate": round(len(posting) / total * 100, 1) if total else 0.0,
            "average_posts_per_user": round(len(posts) / total, 2) if total else 0.0,
        }

    def forum_stats(self):
        store = self.store
        posts = store.posts._load_all()
        meets = store.meets._load_all()
        return {
            "users": len(store.users._load_all()),
            "categories": len(store.categories._load_all()),
            "posts": len(posts),
            "visible_posts": sum(1 for post in posts if not post.get("is_hidden")),
            "hidden_posts": sum(1 for post in posts if post.get("is_hidden")),
            "locked_posts": sum(1 for post in posts if post.get("is_locked")),
            "replies": len(store.replies._load_all()),
            "meets": len(meets),
            "rsvps": sum(len(meet.get("attendees") or []) for meet in meets),
            "deleted_posts": len(store.posts._load_all(store.posts.deleted_prefix)),
            "deleted_replies": len(store.replies._load_all(store.replies.deleted_prefix)),
        }

    def category_stats(self):
        """Post and reply counts per live category."""
        store = self.store
        posts = store.posts._load_all()
        result = []
        for category in store.categories._load_all():
            in_category = [post for post in posts if post.get("category_id") == category["id"]]
            result.append({
                "category_id": category["id"],
                "name": category.get("name"),
                "posts": len(in_category),
                "replies": sum(post.get("replies") or 0 for post in in_category),
            })
        return result
