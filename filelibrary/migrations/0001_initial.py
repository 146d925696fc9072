import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import filelibrary.storage


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Artifact",
            fields=[
                (
                    "id",
                    models.AutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("created", models.DateTimeField(auto_now_add=True)),
                ("modified", models.DateTimeField(auto_now=True)),
                (
                    "file",
                    models.FileField(
                        max_length=500,
                        storage=filelibrary.storage.get_artifact_storage,
                        upload_to="",
                    ),
                ),
                ("filename", models.CharField(max_length=255)),
                (
                    "origin_url",
                    models.URLField(
                        help_text="Reference URL of the resource in the manifest",
                        max_length=2000,
                    ),
                ),
                (
                    "media_type",
                    models.CharField(
                        choices=[("file", "File"), ("html", "HTML")],
                        default="file",
                        max_length=10,
                    ),
                ),
                ("published", models.BooleanField(default=False)),
                (
                    "owner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="ReferencingEntity",
            fields=[
                (
                    "id",
                    models.AutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("created", models.DateTimeField(auto_now_add=True)),
                ("modified", models.DateTimeField(auto_now=True)),
                ("kind", models.CharField(db_index=True, max_length=50)),
                ("uuid", models.CharField(db_index=True, max_length=255)),
                ("title", models.CharField(blank=True, default="", max_length=255)),
                (
                    "file_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Ordered ids of attached artifacts",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Incremented every time the file list changes",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "referencing entities",
                "indexes": [
                    models.Index(
                        fields=["kind", "uuid"], name="filelibrary_entity_kind_uuid"
                    )
                ],
            },
        ),
    ]
