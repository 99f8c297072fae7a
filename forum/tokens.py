"""
Password-reset tokens.

A token is a random string stored under ``forum:tokens:<token>`` with its
owner, expiry and a consumed flag. It verifies only while it is unexpired
and unconsumed; reset_password() consumes it in the same transaction that
changes the password, so a token can reset a password at most once.
"""

import logging
from datetime import timedelta

from .exceptions import InvalidToken, NotFound, Result
from .repositories import ROOT
from .utils import isoformat, parse_timestamp


logger = logging.getLogger(__name__)


class TokenManager:
    prefix = f"{ROOT}:tokens:"

    def __init__(self, store):
        self.store = store

    def key(self, token):
        return f"{self.prefix}{token}"

    def _load(self, token):
        if not token:
            return None
        return self.store.backend.get(self.key(token))

    def _load_all(self):
        backend = self.store.backend
        values = backend.get_many(backend.keys(self.prefix))
        return [record for record in values.values() if record is not None]

    def _is_live(self, record):
        if record is None or record.get("consumed"):
            return False
        expires_at = parse_timestamp(record.get("expires_at"))
        return expires_at is not None and self.store.now() < expires_at

    # ========================================================================
    # ISSUING
    # ========================================================================

    def issue_reset_token(self, user_id):
        """
        Create a reset token for ``user_id``.

        Returns:
            Result: value is the token string, or NotFound for an unknown user
        """
        with self.store.mutation():
            if self.store.users._load(user_id) is None:
                return Result.failure(NotFound("User not found", user_id=user_id))
            token = self.store.token_generator()
            now = self.store.now()
            self.store.backend.set(self.key(token), {
                "token": token,
                "user_id": user_id,
                "created_at": isoformat(now),
                "expires_at": isoformat(now + timedelta(seconds=self.store.config.reset_token_ttl)),
                "consumed": False,
                "consumed_at": None,
            })
        # The token itself is never logged
        logger.info(f"tokens: reset token issued for {user_id}")
        return Result.success(token)

    def issue_for_email(self, email):
        """Forgot-password entry point; inactive or unknown accounts get NotFound."""
        user = self.store.users.get_by_email(email)
        if user is None or not user.get("is_active", True):
            logger.info("tokens: reset requested for unknown or inactive account")
            return Result.failure(NotFound("No active account for this email"))
        return self.issue_reset_token(user["id"])

    # ========================================================================
    # VERIFYING & CONSUMING
    # ========================================================================

    def get_by_token(self, token):
        """Raw token record (consumed and expired included), or None."""
        self.store.ensure_initialized(for_write=False)
        return self._load(token)

    def verify_token(self, token):
        """
        Returns:
            Result: value is the token record; InvalidToken when the token is
            unknown, expired or already consumed
        """
        self.store.ensure_initialized(for_write=False)
        record = self._load(token)
        if not self._is_live(record):
            logger.warning("tokens: verification failed (unknown, expired or consumed)")
            return Result.failure(InvalidToken())
        return Result.success(record)

    def invalidate_token(self, token):
        """
        Mark a token consumed. Idempotent.

        Returns:
            bool: True if the token exists (consumed now or earlier)
        """
        with self.store.mutation():
            record = self._load(token)
            if record is None:
                return False
            if not record.get("consumed"):
                record["consumed"] = True
                record["consumed_at"] = self.store.timestamp()
                self.store.backend.set(self.key(token), record)
        return True

    def reset_password(self, token, new_password):
        """
        Consume ``token`` and set its owner's password.

        Returns:
            Result: value is the updated user, or InvalidToken
        """
        with self.store.mutation():
            record = self.store.backend.get(self.key(token), for_update=True) if token else None
            if not self._is_live(record):
                logger.warning("tokens: password reset with invalid token")
                return Result.failure(InvalidToken())
            user = self.store.users.set_password(record["user_id"], new_password)
            if user is None:
                return Result.failure(InvalidToken())
            self.invalidate_token(token)
        logger.info(f"tokens: password reset for {record['user_id']}")
        return Result.success(user)

    # ========================================================================
    # HOUSEKEEPING
    # ========================================================================

    def list_for_user(self, user_id):
        return [record for record in self._load_all() if record.get("user_id") == user_id]

    def purge_expired(self):
        """Remove expired and consumed tokens; returns how many were removed."""
        removed = 0
        with self.store.mutation():
            for record in self._load_all():
                if not self._is_live(record):
                    self.store.backend.delete(self.key(record["token"]))
                    removed += 1
        logger.info(f"tokens: purged {removed} stale tokens")
        return removed
