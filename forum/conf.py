"""Forum store configuration, read from ``settings.FORUM_STORE``."""

from dataclasses import dataclass, fields

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


BACKEND_CHOICES = ("auto", "database", "memory")
DUPLICATE_RSVP_CHOICES = ("idempotent", "reject")


@dataclass(frozen=True)
class StoreConfig:
    backend: str = "auto"
    reset_token_ttl: int = 3600
    duplicate_rsvp: str = "idempotent"
    zero_capacity_unlimited: bool = True
    lazy_init: bool = True
    include_sample_groups: bool = False
    admin_email: str = "admin@store.com"
    admin_password: str = "admin123"
    demo_password: str = "demo123"

    def __post_init__(self):
        if self.backend not in BACKEND_CHOICES:
            raise ImproperlyConfigured(
                f"FORUM_STORE['BACKEND'] must be one of {BACKEND_CHOICES}, got {self.backend!r}"
            )
        if self.duplicate_rsvp not in DUPLICATE_RSVP_CHOICES:
            raise ImproperlyConfigured(
                f"FORUM_STORE['DUPLICATE_RSVP'] must be one of {DUPLICATE_RSVP_CHOICES}, "
                f"got {self.duplicate_rsvp!r}"
            )
        if self.reset_token_ttl <= 0:
            raise ImproperlyConfigured("FORUM_STORE['RESET_TOKEN_TTL'] must be a positive number of seconds")


def load_config(overrides=None) -> StoreConfig:
    """
    Build a StoreConfig from Django settings.

    Settings keys are the upper-case field names (``RESET_TOKEN_TTL``);
    ``overrides`` uses the lower-case field names and wins over settings.
    """
    raw = dict(getattr(settings, "FORUM_STORE", {}) or {})
    known = {f.name for f in fields(StoreConfig)}
    values = {}
    for key, value in raw.items():
        name = key.lower()
        if name not in known:
            raise ImproperlyConfigured(f"Unknown FORUM_STORE option: {key}")
        values[name] = value
    values.update(overrides or {})
    return StoreConfig(**values)
