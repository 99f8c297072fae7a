"""
WSGI config for forumsite project.

The forum store is built here, once per worker process, before the first
request is served.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'forumsite.settings')

application = get_wsgi_application()

from forum.apps import get_store  # noqa: E402

get_store()
