"""
Meet RSVPs.

The capacity check and the attendee append happen under the store lock and
inside one backend transaction (with a row lock on the durable backend), so
a meet never ends up with more attendees than its capacity, however many
requests race for the last place.

Policies (FORUM_STORE settings):
    DUPLICATE_RSVP            "idempotent": a repeat RSVP succeeds unchanged
                              "reject": a repeat RSVP fails with DuplicateKey
    ZERO_CAPACITY_UNLIMITED   True: capacity 0 means no limit
                              False: capacity 0 means no places
    A capacity of None is always unlimited.
"""

import logging

from .exceptions import CapacityExceeded, DuplicateKey, NotFound, Result


logger = logging.getLogger(__name__)


class RsvpManager:
    def __init__(self, store):
        self.store = store

    @property
    def meets(self):
        return self.store.meets

    def capacity_limit(self, meet):
        """Effective number of places, or None when unlimited."""
        capacity = meet.get("capacity")
        if capacity is None:
            return None
        if capacity == 0 and self.store.config.zero_capacity_unlimited:
            return None
        return capacity

    def _find(self, meet, user_id):
        for index, attendee in enumerate(meet.get("attendees") or []):
            if attendee.get("user_id") == user_id:
                return index
        return None

    def rsvp(self, meet_id, user_id, name="", email=""):
        """
        Add ``user_id`` to a meet.

        Returns:
            Result: value is the updated meet; NotFound, CapacityExceeded,
            or DuplicateKey when the reject policy is active
        """
        with self.store.mutation():
            meet = self.store.backend.get(self.meets.key(meet_id), for_update=True)
            if meet is None:
                return Result.failure(NotFound("Meet not found", meet_id=meet_id))

            if self._find(meet, user_id) is not None:
                if self.store.config.duplicate_rsvp == "reject":
                    logger.info(f"rsvp: duplicate RSVP by {user_id} for {meet_id} rejected")
                    return Result.failure(DuplicateKey("Already attending", meet_id=meet_id, user_id=user_id))
                return Result.success(meet)

            limit = self.capacity_limit(meet)
            if limit is not None and len(meet["attendees"]) >= limit:
                logger.info(f"rsvp: {meet_id} is full ({limit})")
                return Result.failure(CapacityExceeded(meet_id=meet_id, capacity=limit))

            now = self.store.timestamp()
            meet["attendees"].append({
                "user_id": user_id,
                "name": name,
                "email": email,
                "rsvp_at": now,
            })
            meet["updated_at"] = now
            self.meets._save(meet)

        logger.info(f"rsvp: {user_id} attending {meet_id} ({len(meet['attendees'])} attendees)")
        return Result.success(meet)

    def cancel(self, meet_id, user_id):
        """
        Remove ``user_id`` from a meet.

        Returns:
            Result: value is the updated meet; NotFound for an unknown meet or
            a user who is not attending
        """
        with self.store.mutation():
            meet = self.store.backend.get(self.meets.key(meet_id), for_update=True)
            if meet is None:
                return Result.failure(NotFound("Meet not found", meet_id=meet_id))
            index = self._find(meet, user_id)
            if index is None:
                return Result.failure(NotFound("Not attending this meet", meet_id=meet_id, user_id=user_id))
            del meet["attendees"][index]
            meet["updated_at"] = self.store.timestamp()
            self.meets._save(meet)

        logger.info(f"rsvp: {user_id} cancelled for {meet_id}")
        return Result.success(meet)

    def attendees(self, meet_id):
        meet = self.meets.get_by_id(meet_id)
        return None if meet is None else list(meet.get("attendees") or [])

    def is_attending(self, meet_id, user_id):
        meet = self.meets.get_by_id(meet_id)
        return meet is not None and self._find(meet, user_id) is not None

    def remaining_places(self, meet_id):
        """Places left, or None when the meet is unknown or unlimited."""
        meet = self.meets.get_by_id(meet_id)
        if meet is None:
            return None
        limit = self.capacity_limit(meet)
        if limit is None:
            return None
        return max(0, limit - len(meet.get("attendees") or []))
