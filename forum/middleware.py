"""
================================================================================
FORUM DATA STORE - CUSTOM MIDDLEWARE
================================================================================

@file        middleware.py
@description Request wiring for the process-wide forum store
@version     1.0.0

MODULE PURPOSE
================================================================================
This module provides the middleware classes that connect Django requests to
the forum store:

1. ForumStoreMiddleware
   - Attaches the store handle as request.forum_store
   - Turns storage failures into a JSON 503 response

2. ForumActivityMiddleware
   - Refreshes last_active for the forum user bound to the session
   - Uses the cache to write at most once per 30 seconds per user

SETTINGS
================================================================================
    MIDDLEWARE = [
        ...
        'django.contrib.sessions.middleware.SessionMiddleware',
        'forum.middleware.ForumStoreMiddleware',
        'forum.middleware.ForumActivityMiddleware',
        ...
    ]

ForumActivityMiddleware needs SessionMiddleware before it and reads the
user id from request.session["forum_user_id"].

ERROR HANDLING
================================================================================
- BackendUnavailable / NotInitialized raised by a view become
  {"code": ..., "message": ...} with status 503
- Activity updates that fail are logged and never break the request

================================================================================
"""

import logging
from datetime import timedelta

from django.core.cache import cache
from django.http import JsonResponse
from django.utils import timezone

from .apps import get_store
from .exceptions import BackendUnavailable, NotInitialized


logger = logging.getLogger(__name__)

SESSION_USER_KEY = "forum_user_id"
ACTIVITY_THROTTLE = timedelta(seconds=30)


# ============================================================================
# STORE HANDLE MIDDLEWARE
# ============================================================================

class ForumStoreMiddleware:
    """
    Attach the forum store to every request.

    Views never import a module-level singleton; they use the handle this
    middleware sets:

        def meet_rsvp(request, meet_id):
            result = request.forum_store.rsvp.rsvp(meet_id, user_id, name, email)

    Attributes:
        get_response: Next middleware or view in the chain
        store: The ForumStore built once for this process
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.store = get_store()

    def __call__(self, request):
        request.forum_store = self.store
        return self.get_response(request)

    def process_exception(self, request, exception):
        """
        Answer storage failures with 503 instead of a server error page.

        Returns:
            JsonResponse for BackendUnavailable / NotInitialized, else None
        """
        if isinstance(exception, (BackendUnavailable, NotInitialized)):
            logger.error(f"Forum store failure on {request.path}: {exception.message}")
            return JsonResponse(exception.as_dict(), status=exception.status)
        return None


# ============================================================================
# LAST ACTIVE TRACKING MIDDLEWARE
# ============================================================================

class ForumActivityMiddleware:
    """
    Update the session user's last_active timestamp with caching.

    Caching Strategy:
        Key: "forum_last_active_{user_id}"
        Only writes to the store when the cached timestamp is missing or
        older than 30 seconds.

    Attributes:
        get_response: Next middleware or view in the chain
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        session = getattr(request, "session", None)
        user_id = session.get(SESSION_USER_KEY) if session is not None else None

        if user_id:
            now = timezone.now()
            cache_key = f"forum_last_active_{user_id}"
            last_update = cache.get(cache_key)

            # ================================================================
            #        WRITE THROTTLING
            # ================================================================
            if not last_update or (now - last_update) > ACTIVITY_THROTTLE:
                store = getattr(request, "forum_store", None) or get_store()
                try:
                    store.users.touch_activity(user_id)
                    cache.set(cache_key, now, int(ACTIVITY_THROTTLE.total_seconds()))
                except (BackendUnavailable, NotInitialized) as exc:
                    logger.warning(f"Could not update last_active for {user_id}: {exc.message}")

        return self.get_response(request)
