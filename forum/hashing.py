"""Password hashing capability injected into the forum store."""

import logging

from django.contrib.auth.hashers import check_password, identify_hasher, make_password


logger = logging.getLogger(__name__)


class PasswordHasher:
    """
    Single entry point for every code path that stores a password.

    Wraps Django's configured PASSWORD_HASHERS, so the digest algorithm
    follows the project settings (PBKDF2 by default, MD5 in tests).
    """

    def hash(self, raw_password):
        if raw_password is None or raw_password == "":
            raise ValueError("Password must not be empty")
        return make_password(raw_password)

    def verify(self, raw_password, digest):
        if not digest:
            return False
        return check_password(raw_password, digest)

    def is_digest(self, value):
        """True if ``value`` is a digest produced by a configured hasher."""
        if not isinstance(value, str) or not value:
            return False
        try:
            identify_hasher(value)
        except ValueError:
            return False
        return True

    def ensure_digest(self, value):
        """Hash ``value`` unless it already is a digest."""
        if self.is_digest(value):
            return value
        logger.info("Hashing plaintext password value before storage")
        return self.hash(value)
