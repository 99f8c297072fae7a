import logging
import threading

from django.apps import AppConfig, apps


logger = logging.getLogger(__name__)


class ForumConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'forum'
    verbose_name = 'Forum data store'

    def __init__(self, app_name, app_module):
        super().__init__(app_name, app_module)
        self._store = None
        self._store_lock = threading.Lock()

    def build_store(self, **overrides):
        # Imported here so the app registry is ready before the ORM is touched
        from .backends import select_backend
        from .conf import load_config
        from .store import ForumStore

        config = load_config(overrides)
        store = ForumStore(backend=select_backend(config.backend), config=config)
        logger.info(f"Forum store created ({store.backend.storage_type} storage)")
        return store

    def get_store(self):
        """Return the process-wide store, building it on first use."""
        if self._store is None:
            with self._store_lock:
                if self._store is None:
                    self._store = self.build_store()
        return self._store

    def set_store(self, store):
        """Replace the process-wide store (tests and management commands)."""
        with self._store_lock:
            self._store = store


def get_store():
    return apps.get_app_config('forum').get_store()
