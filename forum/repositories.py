"""
================================================================================
FORUM DATA STORE - ENTITY REPOSITORIES
================================================================================

@file        repositories.py
@description Typed accessors for each forum collection
@version     1.0.0

MODULE PURPOSE
================================================================================
Each repository owns one key prefix on the storage backend and exposes:

    list()                    -> live records
    get_by_id(id)             -> record or None
    add(record) / add_*(...) -> Result (new record, or why it was refused)
    update(id, **fields)      -> merged record or None (shallow merge)
    delete(id)                -> bool, moves the record to the deleted log
    list_with_deleted()       -> live + soft-deleted records
    get_by_id_with_deleted()  -> record from either space

REPOSITORIES DEFINED
================================================================================
1. UserRepository       forum:users:*      + username/email indexes
2. CategoryRepository   forum:categories:*
3. PostRepository       forum:posts:*
4. ReplyRepository      forum:replies:*
5. MeetRepository       forum:meets:*
6. SettingsRepository   forum:settings:<name>

LOCKING
================================================================================
Every mutation runs inside ForumStore.mutation(): lazy initialization,
the store-wide lock and a backend transaction. Reads take no lock.

================================================================================
"""

import copy
import logging

from .exceptions import DuplicateKey, NotFound, PostLocked, Result
from .models import MeetStatus, Role
from .utils import merge, new_id


logger = logging.getLogger(__name__)

ROOT = "forum"
DELETED_AT = "deleted_at"


# ============================================================================
# BASE REPOSITORY
# ============================================================================

class Repository:
    """
    Shared plumbing for one collection of JSON records.

    Subclasses set ``collection`` (key segment) and ``id_prefix`` (prefix of
    generated ids) and may hook ``_after_delete`` for cascades and index
    maintenance.
    """

    collection = None
    id_prefix = None

    def __init__(self, store):
        self.store = store

    @property
    def backend(self):
        return self.store.backend

    # --- Keys ---

    @property
    def prefix(self):
        return f"{ROOT}:{self.collection}:"

    @property
    def deleted_prefix(self):
        return f"{ROOT}:deleted:{self.collection}:"

    def key(self, record_id):
        return f"{self.prefix}{record_id}"

    def deleted_key(self, record_id):
        return f"{self.deleted_prefix}{record_id}"

    # --- Raw access (no initialization, no locking) ---

    def _load(self, record_id):
        if not record_id:
            return None
        return self.backend.get(self.key(record_id))

    def _load_all(self, prefix=None):
        keys = self.backend.keys(prefix or self.prefix)
        values = self.backend.get_many(keys)
        records = [values[key] for key in keys if values.get(key) is not None]
        records.sort(key=lambda record: record.get("created_at") or "")
        return records

    def _save(self, record):
        self.backend.set(self.key(record["id"]), record)
        return record

    def _insert(self, record):
        """Insert-only save; None on success, DuplicateKey when the id is taken."""
        if self.backend.add(self.key(record["id"]), record):
            return None
        logger.warning(f"{self.collection}: refused duplicate id {record['id']}")
        return DuplicateKey(f"{self.collection} id is already in use", field="id", value=record["id"])

    def _stamp(self, record):
        now = self.store.timestamp()
        record.setdefault("id", new_id(self.id_prefix))
        record.setdefault("created_at", now)
        record.setdefault("updated_at", now)
        return record

    # --- Public reads ---

    def list(self):
        self.store.ensure_initialized(for_write=False)
        return self._load_all()

    def count(self):
        return len(self.list())

    def get_by_id(self, record_id):
        self.store.ensure_initialized(for_write=False)
        return self._load(record_id)

    def list_deleted(self):
        self.store.ensure_initialized(for_write=False)
        return self._load_all(self.deleted_prefix)

    def list_with_deleted(self):
        return self.list() + self.list_deleted()

    def get_by_id_with_deleted(self, record_id):
        record = self.get_by_id(record_id)
        if record is None and record_id:
            record = self.backend.get(self.deleted_key(record_id))
        return record

    # --- Public writes ---

    def update(self, record_id, **fields):
        """
        Shallow-merge ``fields`` into the record.

        Returns:
            dict: Updated record, or None when the id is unknown
        """
        with self.store.mutation():
            record = self._load(record_id)
            if record is None:
                logger.warning(f"{self.collection}: update of unknown id {record_id}")
                return None
            updated = self._merge(record, fields)
            self._save(updated)
        logger.info(f"{self.collection}: updated {record_id} ({', '.join(sorted(fields)) or 'no fields'})")
        return updated

    def delete(self, record_id):
        """Soft-delete: move the record into the deleted log."""
        with self.store.mutation():
            record = self._load(record_id)
            if record is None:
                logger.warning(f"{self.collection}: delete of unknown id {record_id}")
                return False
            self._soft_delete(record)
        logger.info(f"{self.collection}: {record_id} moved to deleted log")
        return True

    # --- Hooks ---

    def _merge(self, record, fields):
        updated = merge(record, fields)
        if "updated_at" in record:
            updated["updated_at"] = self.store.timestamp()
        return updated

    def _soft_delete(self, record):
        tombstone = dict(record)
        tombstone[DELETED_AT] = self.store.timestamp()
        self.backend.set(self.deleted_key(record["id"]), tombstone)
        self.backend.delete(self.key(record["id"]))
        self._after_delete(record)

    def _after_delete(self, record):
        pass


# ============================================================================
# USERS
# ============================================================================

class UserRepository(Repository):
    """
    Forum accounts with O(1) username and email lookups.

    Index keys:
        forum:index:username:<username>   (case-sensitive)
        forum:index:email:<email>         (lower-cased)

    Passwords only ever reach storage through the store's PasswordHasher.
    """

    collection = "users"
    id_prefix = "user"
    IDENTITY_FIELDS = ("username", "email")

    @staticmethod
    def normalize_email(email):
        return (email or "").strip().lower()

    def username_key(self, username):
        return f"{ROOT}:index:username:{username}"

    def email_key(self, email):
        return f"{ROOT}:index:email:{self.normalize_email(email)}"

    def _lookup(self, index_key):
        user_id = self.backend.get(index_key)
        return self._load(user_id) if user_id else None

    def index_key(self, field, value):
        return self.username_key(value) if field == "username" else self.email_key(value)

    def _duplicate(self, field, value):
        if field == "username":
            return DuplicateKey("Username is already taken", field="username", value=value)
        return DuplicateKey("Email is already registered", field="email", value=self.normalize_email(value))

    def _claim_indexes(self, user, fields=IDENTITY_FIELDS):
        """
        Point the index keys for ``fields`` at ``user`` with insert-only writes.

        The insert is what keeps usernames and emails unique across worker
        processes; the store lock only covers one process. On a lost claim
        the keys claimed so far are released.

        Returns:
            DuplicateKey or None
        """
        claimed = []
        for field in fields:
            index_key = self.index_key(field, user[field])
            owner = self.backend.get(index_key)
            if owner == user["id"]:
                continue
            if owner is not None and self._load(owner) is None:
                # Dangling entry left behind by an interrupted write
                self.backend.delete(index_key)
            if not self.backend.add(index_key, user["id"]):
                for key in claimed:
                    self.backend.delete(key)
                return self._duplicate(field, user[field])
            claimed.append(index_key)
        return None

    def _drop_indexes(self, user, fields=IDENTITY_FIELDS):
        for field in fields:
            index_key = self.index_key(field, user[field])
            if self.backend.get(index_key) == user["id"]:
                self.backend.delete(index_key)

    def _collision(self, username=None, email=None, exclude_id=None):
        """Return a DuplicateKey error if username/email belongs to another live user."""
        for field, value in (("username", username), ("email", email)):
            if value is None:
                continue
            owner = self._lookup(self.index_key(field, value))
            if owner is not None and owner["id"] != exclude_id:
                return self._duplicate(field, value)
        return None

    # --- Lookups ---

    def get_by_username(self, username):
        self.store.ensure_initialized(for_write=False)
        if not username:
            return None
        return self._lookup(self.username_key(username))

    def get_by_email(self, email):
        self.store.ensure_initialized(for_write=False)
        if not email:
            return None
        return self._lookup(self.email_key(email))

    def get_by_identifier(self, identifier):
        """Find a user by username first, then by email."""
        return self.get_by_username(identifier) or self.get_by_email(identifier)

    # --- Writes ---

    def _create(self, username, email, password, name="", role=Role.USER,
                security_question=None, security_answer=None, **extra):
        """
        Write a new user record and claim its index keys.

        Returns:
            tuple: (user, None) or (None, DuplicateKey)
        """
        now = self.store.timestamp()
        user = {
            "username": username,
            "email": email.strip(),
            "name": name or username,
            "password": self.store.hasher.hash(password),
            "role": str(role),
            "is_active": True,
            "email_verified": False,
            "security_question": None,
            "security_answer": None,
            "created_at": now,
            "last_active": None,
        }
        user.update(extra)
        if security_question and security_answer:
            user["security_question"] = security_question
            user["security_answer"] = self.store.hasher.hash(self.normalize_answer(security_answer))
        user.setdefault("id", new_id(self.id_prefix))

        error = self._insert(user)
        if error is None:
            error = self._claim_indexes(user)
            if error is not None:
                self.backend.delete(self.key(user["id"]))
        if error is not None:
            return None, error
        return user, None

    def add_user(self, username, email, password, name="", role=Role.USER, **extra):
        """
        Create an account after re-checking username and email uniqueness.

        Args:
            username: Unique, case-sensitive handle
            email: Unique address, compared lower-cased
            password: Plaintext; hashed before it is written
            name: Display name (defaults to the username)
            role: Role value
            **extra: Additional fields (is_active, email_verified, ...)

        Returns:
            Result: value is the new user, or error is DuplicateKey

        Example:
            result = store.users.add_user("demo", "demo@x.com", "s3cret")
            if not result.ok:
                print(result.error.context["field"])
        """
        if not username or not email:
            raise ValueError("username and email are required")
        if role not in Role.values:
            raise ValueError(f"Unknown role: {role}")

        with self.store.mutation():
            # Fast path for the common refusal; the insert-only index claim
            # in _create() settles races with other processes
            error = self._collision(username=username, email=email)
            if error is None:
                user, error = self._create(username, email, password, name=name, role=role, **extra)
            if error is not None:
                logger.warning(f"users: refused duplicate {error.context['field']} {error.context['value']}")
                return Result.failure(error)
            self.store.rewards.ensure_ledger(user["id"])

        logger.info(f"users: created {user['id']} ({user['email']})")
        return Result.success(user)

    def add(self, record):
        return self.add_user(**record)

    def update(self, record_id, **fields):
        """
        Shallow-merge profile fields.

        ``password`` is hashed; ``username`` and ``email`` must go through
        change_identity() because they can collide, and the security answer
        through set_security_answer().
        """
        blocked = [name for name in self.IDENTITY_FIELDS if name in fields]
        if blocked:
            raise ValueError(f"Use change_identity() to change {', '.join(blocked)}")
        if "security_answer" in fields:
            raise ValueError("Use set_security_answer() to change the security answer")
        if "password" in fields:
            fields["password"] = self.store.hasher.hash(fields["password"])
        if "role" in fields and fields["role"] not in Role.values:
            raise ValueError(f"Unknown role: {fields['role']}")
        return super().update(record_id, **fields)

    def change_identity(self, user_id, username=None, email=None):
        """
        Change username and/or email, keeping the indexes in step.

        Returns:
            Result: updated user, NotFound or DuplicateKey
        """
        with self.store.mutation():
            user = self._load(user_id)
            if user is None:
                return Result.failure(NotFound("User not found", user_id=user_id))
            error = self._collision(username=username, email=email, exclude_id=user_id)
            changed = dict(user)
            if username:
                changed["username"] = username
            if email:
                changed["email"] = email.strip()
            moved = [
                field for field in self.IDENTITY_FIELDS
                if self.index_key(field, changed[field]) != self.index_key(field, user[field])
            ]
            if error is None:
                error = self._claim_indexes(changed, moved)
            if error is not None:
                logger.warning(f"users: refused identity change for {user_id}: {error.message}")
                return Result.failure(error)
            self._drop_indexes(user, moved)
            self._save(changed)
        logger.info(f"users: identity of {user_id} changed")
        return Result.success(changed)

    def set_password(self, user_id, raw_password):
        return self.update(user_id, password=raw_password)

    # --- Security question ---

    @staticmethod
    def normalize_answer(answer):
        return " ".join((answer or "").split()).lower()

    def set_security_answer(self, user_id, question, answer):
        """
        Store a security question and the digest of its answer.

        Answers are compared case- and whitespace-insensitively, so they
        are normalized before hashing.

        Returns:
            dict: Updated user, or None when the id is unknown
        """
        if not question or not self.normalize_answer(answer):
            raise ValueError("Security question and answer are required")
        digest = self.store.hasher.hash(self.normalize_answer(answer))
        return super().update(user_id, security_question=question, security_answer=digest)

    def get_security_question(self, identifier):
        user = self.get_by_identifier(identifier)
        return user.get("security_question") if user else None

    def verify_security_answer(self, identifier, answer):
        """True if ``answer`` matches the stored answer of an active user."""
        user = self.get_by_identifier(identifier)
        if user is None or not user.get("is_active", True) or not user.get("security_answer"):
            return False
        if not self.store.hasher.verify(self.normalize_answer(answer), user["security_answer"]):
            logger.warning(f"users: wrong security answer for {identifier}")
            return False
        return True

    def authenticate(self, identifier, raw_password):
        """
        Check credentials by username or email.

        Returns:
            dict: The user (last_active refreshed) or None
        """
        user = self.get_by_identifier(identifier)
        if user is None or not user.get("is_active", True):
            return None
        if not self.store.hasher.verify(raw_password, user.get("password")):
            logger.warning(f"users: failed password check for {identifier}")
            return None
        return self.touch_activity(user["id"]) or user

    def touch_activity(self, user_id):
        return self.update(user_id, last_active=self.store.timestamp())

    def _after_delete(self, record):
        # Deleted users no longer reserve their username or email
        self._drop_indexes(record)


# ============================================================================
# CATEGORIES
# ============================================================================

class CategoryRepository(Repository):
    collection = "categories"
    id_prefix = "cat"

    def list(self):
        categories = super().list()
        categories.sort(key=lambda category: (category.get("order") is None, category.get("order") or 0))
        return categories

    def add_category(self, name, description="", color=None, icon=None, order=None,
                     is_private=False, moderators=None, category_id=None):
        """
        Create a category; ``category_id`` picks a readable id ("general").

        Returns:
            Result: new category, or DuplicateKey when the id is taken
        """
        if not name:
            raise ValueError("Category name is required")
        category = {
            "name": name,
            "description": description,
            "color": color,
            "icon": icon,
            "order": order,
            "is_private": is_private,
            "moderators": list(moderators or []),
        }
        if category_id:
            category["id"] = category_id
        with self.store.mutation():
            error = self._insert(self._stamp(category))
        if error is not None:
            return Result.failure(error)
        logger.info(f"categories: created {category['id']} ({name})")
        return Result.success(category)

    def add(self, record):
        record = dict(record)
        return self.add_category(category_id=record.pop("id", None), **record)

    def delete(self, record_id):
        """Refuse to delete a category that still holds posts."""
        with self.store.mutation():
            remaining = [
                post for post in self.store.posts._load_all()
                if post.get("category_id") == record_id
            ]
            if remaining:
                logger.warning(f"categories: cannot delete {record_id}, it has {len(remaining)} posts")
                return False
            return super().delete(record_id)


# ============================================================================
# POSTS
# ============================================================================

class PostRepository(Repository):
    """
    Forum threads.

    Visibility: hidden posts are left out of list() unless include_hidden
    is passed. Locked posts refuse new replies. Deleting a post moves its
    replies to the deleted log as well.
    """

    collection = "posts"
    id_prefix = "post"

    def list(self, include_hidden=False, category_id=None):
        posts = super().list()
        if not include_hidden:
            posts = [post for post in posts if not post.get("is_hidden")]
        if category_id is not None:
            posts = [post for post in posts if post.get("category_id") == category_id]
        # Pinned first, then newest first
        posts.sort(key=lambda post: post.get("created_at") or "", reverse=True)
        posts.sort(key=lambda post: not post.get("is_pinned"))
        return posts

    def _resolve_author(self, author_id=None, author_email=None):
        if author_id:
            return self._users._load(author_id)
        if author_email:
            return self._users._lookup(self._users.email_key(author_email))
        return None

    @property
    def _users(self):
        return self.store.users

    def add_post(self, category_id, title, content, author_id=None, author_email=None,
                 author=None, tags=None, is_pinned=False):
        """
        Create a thread in an existing category.

        Returns:
            Result: new post, or NotFound when the category is unknown
        """
        if not title or not content:
            raise ValueError("Post title and content are required")

        with self.store.mutation():
            if self.store.categories._load(category_id) is None:
                logger.warning(f"posts: unknown category {category_id}")
                return Result.failure(NotFound("Category not found", category_id=category_id))

            user = self._resolve_author(author_id, author_email)
            post = self._stamp({
                "category_id": category_id,
                "title": title,
                "content": content,
                "author_id": user["id"] if user else author_id,
                "author_email": user["email"] if user else author_email,
                "author": author or (user["name"] if user else "Anonymous"),
                "tags": list(tags or []),
                "is_hidden": False,
                "is_locked": False,
                "is_pinned": is_pinned,
                "replies": 0,
                "views": 0,
                "likes": 0,
            })
            self._save(post)
            if user:
                self.store.rewards.award_for_action(user["id"], "post")

        logger.info(f"posts: created {post['id']} in {category_id}")
        return Result.success(post)

    def add(self, record):
        return self.add_post(**record)

    # --- Moderation ---

    def set_hidden(self, post_id, hidden=True):
        return self.update(post_id, is_hidden=bool(hidden))

    def set_locked(self, post_id, locked=True):
        return self.update(post_id, is_locked=bool(locked))

    def toggle_hidden(self, post_id):
        with self.store.mutation():
            post = self._load(post_id)
            if post is None:
                return None
            return self.set_hidden(post_id, not post.get("is_hidden"))

    def toggle_locked(self, post_id):
        with self.store.mutation():
            post = self._load(post_id)
            if post is None:
                return None
            return self.set_locked(post_id, not post.get("is_locked"))

    # --- Counters ---

    def _bump(self, post_id, field, amount=1):
        post = self._load(post_id)
        if post is None:
            return None
        post[field] = max(0, (post.get(field) or 0) + amount)
        post["updated_at"] = self.store.timestamp()
        return self._save(post)

    def increment_views(self, post_id):
        with self.store.mutation():
            return self._bump(post_id, "views")

    def like(self, post_id, user_email=None):
        """
        Add a like and award points to the liker and the author.

        Returns:
            dict: Updated post, or None for an unknown post
        """
        with self.store.mutation():
            post = self._bump(post_id, "likes")
            if post is None:
                return None
            self.store.rewards.award_for_like(user_email, post.get("author_email"))
        return post

    # --- Deletion ---

    def delete(self, record_id, actor_email=None):
        """
        Soft-delete a post and its replies.

        Args:
            record_id: Post id
            actor_email: When given, only the author or an admin may delete
        """
        with self.store.mutation():
            if actor_email is not None:
                post = self._load(record_id)
                if post is not None and not self.store.can_moderate(actor_email, post.get("author_email")):
                    logger.warning(f"posts: {actor_email} not allowed to delete {record_id}")
                    return False
            return super().delete(record_id)

    def bulk_delete(self, post_ids):
        deleted = 0
        with self.store.mutation():
            for post_id in post_ids:
                if self.delete(post_id):
                    deleted += 1
        logger.info(f"posts: bulk deleted {deleted} of {len(post_ids)}")
        return deleted

    def _after_delete(self, record):
        replies = self.store.replies
        for reply in replies._load_all():
            if reply.get("post_id") == record["id"]:
                replies._soft_delete(reply)


# ============================================================================
# REPLIES
# ============================================================================

class ReplyRepository(Repository):
    collection = "replies"
    id_prefix = "reply"

    def list_for_post(self, post_id):
        return [reply for reply in self.list() if reply.get("post_id") == post_id]

    def add_reply(self, post_id, content, author_id=None, author_email=None, author=None,
                  parent_reply_id=None):
        """
        Reply to a post.

        Returns:
            Result: new reply, NotFound for an unknown post, PostLocked
        """
        if not content:
            raise ValueError("Reply content is required")

        with self.store.mutation():
            posts = self.store.posts
            post = posts._load(post_id)
            if post is None:
                return Result.failure(NotFound("Post not found", post_id=post_id))
            if post.get("is_locked"):
                logger.warning(f"replies: post {post_id} is locked")
                return Result.failure(PostLocked(post_id=post_id))
            if parent_reply_id and self._load(parent_reply_id) is None:
                return Result.failure(NotFound("Parent reply not found", reply_id=parent_reply_id))

            user = posts._resolve_author(author_id, author_email)
            reply = self._stamp({
                "post_id": post_id,
                "content": content,
                "author_id": user["id"] if user else author_id,
                "author_email": user["email"] if user else author_email,
                "author": author or (user["name"] if user else "Anonymous"),
                "parent_reply_id": parent_reply_id,
                "likes": 0,
            })
            self._save(reply)
            posts._bump(post_id, "replies")
            if user:
                self.store.rewards.award_for_action(user["id"], "reply")

        logger.info(f"replies: created {reply['id']} on {post_id}")
        return Result.success(reply)

    def add(self, record):
        return self.add_reply(**record)

    def like(self, reply_id, user_email=None):
        with self.store.mutation():
            reply = self._load(reply_id)
            if reply is None:
                return None
            reply["likes"] = (reply.get("likes") or 0) + 1
            reply["updated_at"] = self.store.timestamp()
            self._save(reply)
            self.store.rewards.award_for_like(user_email, reply.get("author_email"))
        return reply

    def delete(self, record_id, actor_email=None):
        with self.store.mutation():
            if actor_email is not None:
                reply = self._load(record_id)
                if reply is not None and not self.store.can_moderate(actor_email, reply.get("author_email")):
                    logger.warning(f"replies: {actor_email} not allowed to delete {record_id}")
                    return False
            return super().delete(record_id)

    def _after_delete(self, record):
        self.store.posts._bump(record.get("post_id"), "replies", -1)


# ============================================================================
# MEETS
# ============================================================================

class MeetRepository(Repository):
    """Meetups; attendee changes go through the RSVP manager."""

    collection = "meets"
    id_prefix = "meet"

    def list(self, upcoming_only=False):
        meets = super().list()
        if upcoming_only:
            meets = [meet for meet in meets if meet.get("status") == MeetStatus.UPCOMING]
        return meets

    def add_meet(self, title, description="", date=None, location="", capacity=None,
                 status=MeetStatus.UPCOMING, meet_id=None, **extra):
        """
        Create a meet with an empty attendee list.

        Returns:
            Result: new meet, or DuplicateKey when ``meet_id`` is taken
        """
        if not title:
            raise ValueError("Meet title is required")
        if capacity is not None and int(capacity) < 0:
            raise ValueError("Capacity cannot be negative")
        meet = {
            "title": title,
            "description": description,
            "date": date,
            "location": location,
            "capacity": int(capacity) if capacity is not None else None,
            "attendees": [],
            "status": str(status),
        }
        meet.update(extra)
        meet["attendees"] = []
        if meet_id:
            meet["id"] = meet_id
        with self.store.mutation():
            error = self._insert(self._stamp(meet))
        if error is not None:
            return Result.failure(error)
        logger.info(f"meets: created {meet['id']} ({title}, capacity={meet['capacity']})")
        return Result.success(meet)

    def add(self, record):
        record = dict(record)
        return self.add_meet(meet_id=record.pop("id", None), **record)

    def update(self, record_id, **fields):
        if "attendees" in fields:
            raise ValueError("Attendees change through rsvp() and cancel()")
        return super().update(record_id, **fields)


# ============================================================================
# SETTINGS
# ============================================================================

DEFAULT_SETTINGS = {
    "rewards": {
        "points_per_post": 10,
        "points_per_reply": 5,
        "points_per_like": 1,
        "points_per_receiving_like": 2,
        "daily_points_limit": 100,
        "coupons": [
            {
                "id": "coupon-5-off",
                "name": "$5 Off Coupon",
                "points_required": 700,
                "discount_amount": 5,
                "discount_type": "fixed",
                "is_active": True,
            },
            {
                "id": "coupon-10-off",
                "name": "$10 Off Coupon",
                "points_required": 1400,
                "discount_amount": 10,
                "discount_type": "fixed",
                "is_active": True,
            },
        ],
    },
    "site": {
        "general": {
            "forum_name": "Community Forum",
            "description": "Connect with other customers and get support",
            "welcome_message": "Welcome to our community! Please read the guidelines before posting.",
            "contact_email": "support@yourstore.com",
        },
        "moderation": {
            "require_approval": False,
            "auto_spam_detection": True,
            "allow_anonymous": False,
            "enable_reporting": True,
            "max_post_length": 5000,
        },
        "appearance": {
            "primary_color": "#3B82F6",
            "accent_color": "#10B981",
            "dark_mode": False,
            "custom_css": "",
        },
        "notifications": {
            "email_notifications": True,
            "new_post_notifications": True,
            "moderation_alerts": True,
        },
    },
}


class SettingsRepository:
    """Singleton settings records keyed by name ("rewards", "site")."""

    prefix = f"{ROOT}:settings:"

    def __init__(self, store):
        self.store = store

    def key(self, name):
        return f"{self.prefix}{name}"

    def defaults(self, name):
        if name not in DEFAULT_SETTINGS:
            raise KeyError(f"Unknown settings record: {name}")
        record = copy.deepcopy(DEFAULT_SETTINGS[name])
        record["last_updated"] = None
        return record

    def names(self):
        return sorted(DEFAULT_SETTINGS)

    def get(self, name):
        self.store.ensure_initialized(for_write=False)
        stored = self.store.backend.get(self.key(name))
        return stored if stored is not None else self.defaults(name)

    def _write(self, name, record):
        record["last_updated"] = self.store.timestamp()
        self.store.backend.set(self.key(name), record)
        return record

    def update(self, name, **fields):
        with self.store.mutation():
            record = merge(self.get(name), fields)
            self._write(name, record)
        logger.info(f"settings: {name} updated ({', '.join(sorted(fields))})")
        return record

    def reset(self, name):
        with self.store.mutation():
            return self._write(name, self.defaults(name))

    def list(self):
        return {name: self.get(name) for name in self.names()}
