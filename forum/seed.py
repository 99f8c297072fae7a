"""
================================================================================
FORUM DATA STORE - SEED DATA
================================================================================

@file        seed.py
@description Records written when the store is first initialized

SEEDING POLICY
================================================================================
Always seeded:
    - Administrator account (FORUM_STORE ADMIN_EMAIL / ADMIN_PASSWORD)
    - Demo member accounts (DEMO_PASSWORD)
    - "rewards" and "site" settings records
    - The "General Discussion" category
    - An empty rewards ledger for every seeded account

Seeded only with include_sample_groups=True:
    - Sample categories, welcome posts, replies and meets

A record is written only when its key is absent, so seeding on top of a
partly populated store never overwrites data. Passwords go through the
store's hasher; no plaintext reaches the backend.

================================================================================
"""

import logging
from datetime import timedelta

from .models import MeetStatus, Role
from .utils import isoformat


logger = logging.getLogger(__name__)


# ============================================================================
# ACCOUNTS
# ============================================================================

SEED_USERS = [
    {
        "id": "admin-user",
        "username": "forum_admin",
        "name": "Forum Administrator",
        "email": None,  # FORUM_STORE["ADMIN_EMAIL"]
        "role": Role.ADMIN,
        "age": timedelta(0),
        "idle": timedelta(0),
    },
    {
        "id": "demo-user-1",
        "username": "new_member",
        "name": "New Member",
        "email": "newmember@example.com",
        "role": Role.USER,
        "age": timedelta(days=1),
        "idle": timedelta(hours=1),
    },
    {
        "id": "demo-user-2",
        "username": "experienced_user",
        "name": "Experienced User",
        "email": "experienced@example.com",
        "role": Role.USER,
        "age": timedelta(days=30),
        "idle": timedelta(hours=2),
    },
    {
        "id": "demo-user-3",
        "username": "diy_enthusiast",
        "name": "DIY Enthusiast",
        "email": "diy@example.com",
        "role": Role.USER,
        "age": timedelta(days=15),
        "idle": timedelta(minutes=30),
    },
]


# ============================================================================
# CATEGORIES
# ============================================================================

GENERAL_CATEGORY = {
    "id": "general",
    "name": "General Discussion",
    "description": "General topics and discussions",
    "color": "#8B5CF6",
    "icon": "MessageSquare",
    "order": 4,
}

SAMPLE_CATEGORIES = [
    {
        "id": "installation-help",
        "name": "Installation Help",
        "description": "Get help with installing parts and components",
        "color": "#3B82F6",
        "icon": "Wrench",
        "order": 1,
    },
    {
        "id": "project-showcase",
        "name": "Project Showcase",
        "description": "Share your projects and builds",
        "color": "#10B981",
        "icon": "Camera",
        "order": 2,
    },
    {
        "id": "troubleshooting",
        "name": "Troubleshooting",
        "description": "Get help troubleshooting issues",
        "color": "#F59E0B",
        "icon": "AlertTriangle",
        "order": 3,
    },
]


# ============================================================================
# SAMPLE CONTENT
# ============================================================================

SAMPLE_POSTS = [
    {
        "id": "post-1",
        "category_id": "general",
        "title": "Welcome to the Community!",
        "content": (
            "Welcome to the community forum! This is your place to get help with "
            "installations, share your projects, troubleshoot issues and connect "
            "with other enthusiasts. Explore the categories and start a discussion!"
        ),
        "author_id": "admin-user",
        "age": timedelta(days=1),
        "views": 47,
        "likes": 8,
        "is_pinned": True,
        "tags": ["welcome", "introduction", "community"],
    },
    {
        "id": "post-2",
        "category_id": "installation-help",
        "title": "Installation Guide: Getting Started",
        "content": (
            "A guide to your first installation: the basic tools you need, "
            "preparation steps and common tips for success."
        ),
        "author_id": "admin-user",
        "age": timedelta(days=2),
        "views": 156,
        "likes": 23,
        "is_pinned": True,
        "tags": ["guide", "installation", "beginner"],
    },
]

SAMPLE_REPLIES = [
    {
        "id": "reply-1",
        "post_id": "post-1",
        "author_id": "demo-user-1",
        "content": "Thank you for the warm welcome! I'm excited to learn from everyone's experiences.",
        "age": timedelta(hours=6),
        "likes": 3,
    },
    {
        "id": "reply-2",
        "post_id": "post-1",
        "author_id": "demo-user-2",
        "content": "Great to have another member! Don't hesitate to ask questions.",
        "age": timedelta(hours=5),
        "likes": 2,
    },
    {
        "id": "reply-3",
        "post_id": "post-2",
        "author_id": "demo-user-3",
        "content": "This guide was exactly what I needed for my first installation.",
        "age": timedelta(days=1),
        "likes": 5,
    },
]

SAMPLE_MEETS = [
    {
        "id": "meet-1",
        "title": "Monthly Builders Meetup",
        "description": "Bring your current project and meet other members.",
        "location": "Community Workshop",
        "in_days": 14,
        "capacity": 20,
    },
    {
        "id": "meet-2",
        "title": "Online Q&A Session",
        "description": "Live questions and answers with the moderators.",
        "location": "Online",
        "in_days": 7,
        "capacity": None,
    },
]


# ============================================================================
# SEEDING
# ============================================================================

def _absent(store, repository, record_id):
    return store.backend.get(repository.key(record_id)) is None


def _seed_users(store, now):
    users = store.users
    written = 0
    for seed in SEED_USERS:
        email = seed["email"] or store.config.admin_email
        existing = users._load(seed["id"])
        if existing is not None:
            # An interrupted earlier seed may have left the record without its index keys
            if users._claim_indexes(existing) is not None:
                logger.warning(f"Seed account {seed['username']} keeps its record but not its index keys")
            store.rewards.ensure_ledger(seed["id"])
            continue
        if users._collision(username=seed["username"], email=email) is not None:
            logger.warning(f"Seed account {seed['username']} skipped, username or email already in use")
            continue
        password = store.config.admin_password if seed["role"] == Role.ADMIN else store.config.demo_password
        _, error = users._create(
            seed["username"], email, password,
            name=seed["name"],
            role=seed["role"],
            id=seed["id"],
            email_verified=True,
            created_at=isoformat(now - seed["age"]),
            last_active=isoformat(now - seed["idle"]),
        )
        if error is not None:
            logger.warning(f"Seed account {seed['username']} skipped: {error.message}")
            continue
        store.rewards.ensure_ledger(seed["id"])
        written += 1
    return written


def _seed_settings(store):
    written = 0
    for name in store.settings.names():
        if store.backend.get(store.settings.key(name)) is None:
            store.settings._write(name, store.settings.defaults(name))
            written += 1
    return written


def _seed_categories(store, categories, now):
    repository = store.categories
    written = 0
    for category in categories:
        if not _absent(store, repository, category["id"]):
            continue
        record = dict(category, is_private=False, moderators=[])
        record["created_at"] = record["updated_at"] = isoformat(now)
        repository._save(record)
        written += 1
    return written


def _author_fields(store, author_id):
    user = store.users._load(author_id)
    if user is None:
        return {"author_id": None, "author_email": None, "author": "Anonymous"}
    return {"author_id": user["id"], "author_email": user["email"], "author": user["name"]}


def _seed_content(store, now):
    posts, replies, meets = store.posts, store.replies, store.meets
    written = 0
    for sample in SAMPLE_POSTS:
        if not _absent(store, posts, sample["id"]):
            continue
        created = isoformat(now - sample["age"])
        reply_count = sum(1 for reply in SAMPLE_REPLIES if reply["post_id"] == sample["id"])
        posts._save({
            "id": sample["id"],
            "category_id": sample["category_id"],
            "title": sample["title"],
            "content": sample["content"],
            **_author_fields(store, sample["author_id"]),
            "tags": list(sample["tags"]),
            "is_hidden": False,
            "is_locked": False,
            "is_pinned": sample["is_pinned"],
            "replies": reply_count,
            "views": sample["views"],
            "likes": sample["likes"],
            "created_at": created,
            "updated_at": created,
        })
        written += 1

    for sample in SAMPLE_REPLIES:
        if not _absent(store, replies, sample["id"]):
            continue
        created = isoformat(now - sample["age"])
        replies._save({
            "id": sample["id"],
            "post_id": sample["post_id"],
            "content": sample["content"],
            **_author_fields(store, sample["author_id"]),
            "parent_reply_id": None,
            "likes": sample["likes"],
            "created_at": created,
            "updated_at": created,
        })
        written += 1

    for sample in SAMPLE_MEETS:
        if not _absent(store, meets, sample["id"]):
            continue
        meets._save({
            "id": sample["id"],
            "title": sample["title"],
            "description": sample["description"],
            "date": isoformat(now + timedelta(days=sample["in_days"])),
            "location": sample["location"],
            "capacity": sample["capacity"],
            "attendees": [],
            "status": MeetStatus.UPCOMING.value,
            "created_at": isoformat(now),
            "updated_at": isoformat(now),
        })
        written += 1
    return written


def seed_store(store, include_sample_groups=False):
    """
    Write the seed records that are missing from ``store``.

    Called by the initialization controller with the store lock held and a
    backend transaction open.

    Returns:
        int: Number of records written
    """
    now = store.now()
    written = _seed_users(store, now)
    written += _seed_settings(store)
    written += _seed_categories(store, [GENERAL_CATEGORY], now)
    if include_sample_groups:
        written += _seed_categories(store, SAMPLE_CATEGORIES, now)
        written += _seed_content(store, now)
    return written
