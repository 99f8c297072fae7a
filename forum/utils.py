"""Small helpers shared by the repositories: ids, timestamps, record merging."""

import string
from datetime import timedelta, timezone as dt_timezone

from django.utils import timezone
from django.utils.crypto import get_random_string
from django.utils.dateparse import parse_datetime


ID_CHARS = string.ascii_lowercase + string.digits
IMMUTABLE_FIELDS = ("id", "created_at")


def new_id(prefix):
    return f"{prefix}-{get_random_string(12, allowed_chars=ID_CHARS)}"


def generate_token():
    # get_random_string draws from the secrets module
    return get_random_string(48, allowed_chars=string.ascii_letters + string.digits)


def isoformat(moment):
    return moment.isoformat() if moment else None


def parse_timestamp(value):
    """Parse an ISO timestamp from a record; naive values are taken as UTC."""
    if not value:
        return None
    moment = parse_datetime(value)
    if moment is not None and timezone.is_naive(moment):
        moment = timezone.make_aware(moment, dt_timezone.utc)
    return moment


def days_ago(now, days):
    return now - timedelta(days=days)


def merge(record, fields):
    """Shallow merge; ``id`` and ``created_at`` are never overwritten."""
    updated = dict(record)
    for key, value in fields.items():
        if key in IMMUTABLE_FIELDS:
            continue
        updated[key] = value
    return updated
