"""
Admin entry points for the forum store.

    python manage.py forumstore status
    python manage.py forumstore init --sample
    python manage.py forumstore reset --sample --yes
    python manage.py forumstore rehash
    python manage.py forumstore dump
    python manage.py forumstore purge-tokens
    python manage.py forumstore clear --yes
"""

import json

from django.core.management.base import BaseCommand, CommandError

from forum.apps import get_store
from forum.exceptions import BackendUnavailable


class Command(BaseCommand):
    help = "Initialize, reset, repair and inspect the forum data store"

    def add_arguments(self, parser):
        subparsers = parser.add_subparsers(dest="action", required=True)

        init = subparsers.add_parser("init", help="Seed the store unless it is already initialized")
        init.add_argument("--sample", action="store_true", help="Include sample categories, posts and meets")

        reset = subparsers.add_parser("reset", help="Wipe everything and seed again")
        reset.add_argument("--sample", action="store_true", help="Include sample categories, posts and meets")
        reset.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

        clear = subparsers.add_parser("clear", help="Wipe everything without seeding")
        clear.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

        subparsers.add_parser("rehash", help="Hash plaintext passwords and reset seed accounts")
        subparsers.add_parser("status", help="Show initialization state and counts")
        subparsers.add_parser("dump", help="Print every record, deleted ones included, as JSON")
        subparsers.add_parser("purge-tokens", help="Remove expired and consumed reset tokens")

    def handle(self, *args, **options):
        store = get_store()
        action = options["action"]
        try:
            handler = getattr(self, f"handle_{action.replace('-', '_')}")
            handler(store, options)
        except BackendUnavailable as exc:
            raise CommandError(f"Storage backend unavailable: {exc.message}") from exc

    def _confirm(self, options, question):
        if options.get("yes"):
            return
        answer = input(f"{question} [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            raise CommandError("Aborted")

    def _write_json(self, data):
        self.stdout.write(json.dumps(data, indent=2, sort_keys=True, default=str))

    # ==================== ACTIONS ====================

    def handle_init(self, store, options):
        if not store.initialize(include_sample_groups=options["sample"]):
            raise CommandError(f"Initialization failed: {store.last_error.message}")
        self.stdout.write(self.style.SUCCESS(f"Forum store initialized ({store.backend.storage_type})"))

    def handle_reset(self, store, options):
        self._confirm(options, "This deletes ALL forum data, including the deleted log. Continue?")
        if not store.force_reinitialize(include_sample_groups=options["sample"]):
            raise CommandError(f"Reinitialization failed: {store.last_error.message}")
        self.stdout.write(self.style.SUCCESS("Forum store wiped and seeded"))

    def handle_clear(self, store, options):
        self._confirm(options, "This deletes ALL forum data without reseeding. Continue?")
        store.clear_all_data()
        self.stdout.write(self.style.WARNING("Forum store cleared; it will be seeded again on next use"))

    def handle_rehash(self, store, options):
        report = store.force_reinitialize_with_hashed_passwords()
        self.stdout.write(self.style.SUCCESS(
            f"Rehashed {len(report['rehashed'])} passwords, reset {len(report['reset'])} seed accounts, "
            f"wrote {report['seeded']} missing seed records"
        ))

    def handle_status(self, store, options):
        self._write_json(store.get_system_status())

    def handle_dump(self, store, options):
        self._write_json(store.get_all_data_with_deleted())

    def handle_purge_tokens(self, store, options):
        removed = store.tokens.purge_expired()
        self.stdout.write(self.style.SUCCESS(f"Removed {removed} stale reset tokens"))
