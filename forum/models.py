"""
================================================================================
FORUM DATA STORE - DATABASE MODELS
================================================================================

@file        models.py
@description Django ORM models backing the durable forum key/value store
@version     1.0.0

MODULE PURPOSE
================================================================================
The forum keeps all of its state (users, categories, posts, replies, meets,
reset tokens, settings, reward ledgers, the soft-delete log) as JSON
records behind a small key/value interface. This module defines the one
table the durable backend writes to, plus the shared choice enums used by
the records themselves.

DATABASE STRUCTURE
================================================================================
1. StoredRecord
   - key   (primary key, namespaced: "forum:users:user-abc123")
   - value (JSON blob, format owned by the repositories)
   - timestamps for audit/debug

2. Choices (not tables)
   - Role: admin | moderator | user
   - MeetStatus: upcoming | cancelled | completed

KEY NAMESPACES
================================================================================
forum:meta:initialized            -> initialization marker
forum:<collection>:<id>           -> live record
forum:deleted:<collection>:<id>   -> soft-deleted record
forum:index:username:<username>   -> user id
forum:index:email:<email>         -> user id (lower-cased)
forum:tokens:<token>              -> reset token record
forum:settings:<name>             -> settings singleton
forum:rewards:<user id>           -> reward ledger

DEPENDENCIES
================================================================================
- Django 4.2+ (JSONField on SQLite and PostgreSQL)

PERFORMANCE CONSIDERATIONS
================================================================================
- Prefix listing uses key__startswith on the primary key index
- Unique lookups go through index keys, never full scans

================================================================================
"""

from django.db import models


# ============================================================================
# CHOICES
# ============================================================================

class Role(models.TextChoices):
    """
    Forum account roles.

    Stored as the plain string value inside user records, so comparisons
    like ``user["role"] == Role.ADMIN`` work on deserialized JSON.
    """

    ADMIN = "admin", "Administrator"
    MODERATOR = "moderator", "Moderator"
    USER = "user", "User"


class MeetStatus(models.TextChoices):
    UPCOMING = "upcoming", "Upcoming"
    CANCELLED = "cancelled", "Cancelled"
    COMPLETED = "completed", "Completed"


# ============================================================================
# DURABLE KEY/VALUE TABLE
# ============================================================================

class StoredRecord(models.Model):
    """
    One key/value pair of the durable forum store.

    The value is opaque to this model: repositories serialize records to
    JSON-compatible dicts and the backend stores them verbatim.

    Attributes:
        key (CharField): Namespaced key, primary key
        value (JSONField): Stored record
        created_at (DateTimeField): First write
        updated_at (DateTimeField): Last write

    Meta:
        ordering: By key, so prefix listings come back sorted

    Example:
        StoredRecord.objects.filter(key__startswith="forum:users:").count()
    """

    key = models.CharField(
        max_length=255,
        primary_key=True,
        help_text="Namespaced store key"
    )
    value = models.JSONField(
        null=True,
        blank=True,
        help_text="JSON record owned by the forum repositories"
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="Creation timestamp"
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Last write timestamp"
    )

    class Meta:
        ordering = ['key']
        verbose_name = "stored record"
        verbose_name_plural = "stored records"

    def __str__(self):
        return self.key

    @property
    def namespace(self):
        """Collection part of the key ("users" for "forum:users:user-1")."""
        parts = self.key.split(":")
        if len(parts) >= 3 and parts[1] == "deleted":
            return f"deleted:{parts[2]}"
        return parts[1] if len(parts) > 1 else ""


"""
================================================================================
END OF MODELS DEFINITION
================================================================================

DATABASE MIGRATION NOTES
================================================================================
After modifying models, run:
1. python manage.py makemigrations forum
2. python manage.py migrate

================================================================================
"""
