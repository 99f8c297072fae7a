"""
================================================================================
FORUM DATA STORE - REWARDS LEDGER
================================================================================

@file        rewards.py
@description Per-user points, daily cap, history and coupon redemption
@version     1.0.0

LEDGER RECORD (forum:rewards:<user id>)
================================================================================
    {
        "user_id": "user-...",
        "total_points": 120,          # lifetime earned
        "available_points": 80,       # spendable
        "daily_points": 15,           # earned since last_daily_reset
        "last_daily_reset": "2026-...",
        "redeemed_coupons": [...],
        "history": [...]              # newest first, at most 50 entries
    }

Point values and the daily cap are read from the "rewards" settings record
on every award, so an admin change applies immediately.

================================================================================
"""

import logging
import string

from django.utils.crypto import get_random_string

from .exceptions import InsufficientPoints, NotFound, Result
from .repositories import ROOT
from .utils import parse_timestamp


logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50

ACTIONS = {
    "post": ("points_per_post", "Created a new post", "post_creation"),
    "reply": ("points_per_reply", "Replied to a post", "reply_creation"),
    "like_given": ("points_per_like", "Liked a post", "like_given"),
    "like_received": ("points_per_receiving_like", "Received a like", "like_received"),
}


class RewardsLedger:
    prefix = f"{ROOT}:rewards:"

    def __init__(self, store):
        self.store = store

    def key(self, user_id):
        return f"{self.prefix}{user_id}"

    def _blank(self, user_id):
        return {
            "user_id": user_id,
            "total_points": 0,
            "available_points": 0,
            "daily_points": 0,
            "last_daily_reset": self.store.timestamp(),
            "redeemed_coupons": [],
            "history": [],
        }

    def _load(self, user_id):
        return self.store.backend.get(self.key(user_id))

    def _load_all(self):
        backend = self.store.backend
        values = backend.get_many(backend.keys(self.prefix))
        return [ledger for ledger in values.values() if ledger is not None]

    def _save(self, ledger):
        self.store.backend.set(self.key(ledger["user_id"]), ledger)
        return ledger

    def ensure_ledger(self, user_id):
        """Create an empty ledger for ``user_id`` if none exists. Caller holds the lock."""
        ledger = self._load(user_id)
        if ledger is None:
            ledger = self._save(self._blank(user_id))
        return ledger

    def _roll_day(self, ledger):
        last_reset = parse_timestamp(ledger.get("last_daily_reset"))
        now = self.store.now()
        if last_reset is None or last_reset.date() != now.date():
            ledger["daily_points"] = 0
            ledger["last_daily_reset"] = self.store.timestamp()
        return ledger

    def get(self, user_id):
        """Ledger for an existing user, daily counter rolled over; None otherwise."""
        if self.store.users.get_by_id(user_id) is None:
            return None
        with self.store.mutation():
            ledger = self._roll_day(self.ensure_ledger(user_id))
            return self._save(ledger)

    # ========================================================================
    # AWARDING
    # ========================================================================

    def award(self, user_id, points, reason, action_type):
        """
        Add points, clipped to what is left of today's allowance.

        Returns:
            dict: Updated ledger, or None for an unknown user
        """
        with self.store.mutation():
            if self.store.users._load(user_id) is None:
                return None
            ledger = self._roll_day(self.ensure_ledger(user_id))
            limit = self.store.settings.get("rewards").get("daily_points_limit")
            if limit is not None:
                points = min(points, max(0, limit - ledger["daily_points"]))
            if points <= 0:
                logger.info(f"rewards: daily limit reached for {user_id}")
                return ledger

            ledger["total_points"] += points
            ledger["available_points"] += points
            ledger["daily_points"] += points
            ledger["history"].insert(0, {
                "id": f"{action_type}-{get_random_string(8, allowed_chars=string.digits)}",
                "action": reason,
                "points": points,
                "timestamp": self.store.timestamp(),
                "type": action_type,
            })
            del ledger["history"][HISTORY_LIMIT:]
            self._save(ledger)

        logger.info(f"rewards: +{points} to {user_id} ({action_type})")
        return ledger

    def award_for_action(self, user_id, action):
        setting, reason, action_type = ACTIONS[action]
        points = self.store.settings.get("rewards").get(setting) or 0
        return self.award(user_id, points, reason, action_type)

    def award_for_like(self, liker_email, author_email):
        """Points to the liker and to the liked author; self-likes earn nothing."""
        users = self.store.users
        liker = users.get_by_email(liker_email) if liker_email else None
        author = users.get_by_email(author_email) if author_email else None
        if liker and author and liker["id"] == author["id"]:
            return
        if liker:
            self.award_for_action(liker["id"], "like_given")
        if author:
            self.award_for_action(author["id"], "like_received")

    # ========================================================================
    # COUPONS
    # ========================================================================

    def redeem_coupon(self, user_id, coupon_id):
        """
        Spend available points on an active coupon.

        Returns:
            Result: value is {"coupon_code", "redemption", "ledger"};
            NotFound for an unknown user or coupon, InsufficientPoints
        """
        with self.store.mutation():
            if self.store.users._load(user_id) is None:
                return Result.failure(NotFound("User not found", user_id=user_id))
            coupons = self.store.settings.get("rewards").get("coupons") or []
            coupon = next(
                (item for item in coupons if item.get("id") == coupon_id and item.get("is_active", True)),
                None,
            )
            if coupon is None:
                return Result.failure(NotFound("Coupon not found", coupon_id=coupon_id))

            ledger = self.ensure_ledger(user_id)
            required = coupon["points_required"]
            if ledger["available_points"] < required:
                logger.info(f"rewards: {user_id} cannot afford {coupon_id}")
                return Result.failure(InsufficientPoints(
                    required=required, available=ledger["available_points"],
                ))

            code = f"FORUM{coupon['discount_amount']}OFF{get_random_string(6, allowed_chars=string.ascii_uppercase + string.digits)}"
            now = self.store.timestamp()
            redemption = {
                "coupon_id": coupon_id,
                "coupon_code": code,
                "points_used": required,
                "redeemed_at": now,
                "discount_amount": coupon["discount_amount"],
                "discount_type": coupon.get("discount_type", "fixed"),
            }
            ledger["available_points"] -= required
            ledger["redeemed_coupons"].append(redemption)
            ledger["history"].insert(0, {
                "id": f"redemption-{get_random_string(8, allowed_chars=string.digits)}",
                "action": f"Redeemed {coupon['name']}",
                "points": -required,
                "timestamp": now,
                "type": "coupon_redemption",
            })
            del ledger["history"][HISTORY_LIMIT:]
            self._save(ledger)

        logger.info(f"rewards: {user_id} redeemed {coupon_id}")
        return Result.success({"coupon_code": code, "redemption": redemption, "ledger": ledger})

    # ========================================================================
    # LEADERBOARD
    # ========================================================================

    def leaderboard(self, limit=10):
        """Users ranked by lifetime points."""
        self.store.ensure_initialized(for_write=False)
        users = self.store.users
        entries = []
        for ledger in self._load_all():
            user = users._load(ledger["user_id"])
            if user is None:
                continue
            entries.append({
                "user_id": user["id"],
                "username": user["username"],
                "name": user.get("name"),
                "total_points": ledger["total_points"],
                "available_points": ledger["available_points"],
            })
        entries.sort(key=lambda entry: (-entry["total_points"], entry["username"]))
        for rank, entry in enumerate(entries[:limit], start=1):
            entry["rank"] = rank
        return entries[:limit]
