"""
Import a zip archive with an RDF manifest into the file library.

Usage:
    python manage.py import_archive archive.zip
    python manage.py import_archive errors.zip --profile error_codes \
        --owner editor --json

The payload files are stored as unpublished artifacts and a redirect task is
queued for every imported resource. Artifacts are published by the redirect
queue once the redirect service confirms the registration.
"""

import json
from argparse import ArgumentParser

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from importer.exceptions import ImportFailure
from importer.pipeline import ImportPipeline, ImportProfile


class Command(BaseCommand):
    help = "Import a zip archive described by an RDF manifest"  # NOQA: A003

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("archive_path", help="Path of the zip archive")
        parser.add_argument(
            "--profile",
            default=settings.IMPORTER["DEFAULT_PROFILE"],
            choices=sorted(settings.IMPORTER_PROFILES),
            help="Import profile (default=%(default)s)",
        )
        parser.add_argument(
            "--owner",
            default=None,
            help="Username recorded as the owner of the imported artifacts",
        )
        parser.add_argument(
            "--json",
            dest="as_json",
            action="store_true",
            default=False,
            help="Print the result as JSON",
        )

    def get_owner_id(self, username):
        if not username:
            return None
        user_model = get_user_model()
        try:
            return user_model.objects.get(**{user_model.USERNAME_FIELD: username}).pk
        except user_model.DoesNotExist:
            raise CommandError("User %s does not exist" % username) from None

    def handle(
        self,
        *,
        archive_path: str,
        profile: str,
        owner: str | None,
        as_json: bool,
        **options,
    ) -> None:
        owner_id = self.get_owner_id(owner)
        pipeline = ImportPipeline(ImportProfile.from_settings(profile))

        try:
            result = pipeline.run(archive_path, owner_id=owner_id)
        except ImportFailure as exc:
            raise CommandError(str(exc)) from exc

        if as_json:
            self.stdout.write(json.dumps(result.as_dict(), indent=2))
        else:
            self.stdout.write(self.style.SUCCESS(result.message))
            self.stdout.write(
                "Imported %d, failed %d" % (result.imported_count, result.failed_count)
            )
