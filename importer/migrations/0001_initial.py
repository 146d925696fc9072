import django.core.serializers.json
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("filelibrary", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="RedirectTask",
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
                ("real_url", models.URLField(max_length=2000)),
                ("redirect_url", models.URLField(max_length=2000)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("retrying", "Retrying"),
                            ("published", "Published"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "attempts",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of times a worker has picked up this task",
                    ),
                ),
                (
                    "next_attempt_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Earliest time a retrying task may be picked up again",
                        null=True,
                    ),
                ),
                (
                    "last_started",
                    models.DateTimeField(
                        blank=True,
                        help_text="Last time when a worker started processing this task",
                        null=True,
                    ),
                ),
                (
                    "completed",
                    models.DateTimeField(
                        blank=True,
                        help_text="Time when the redirect was registered",
                        null=True,
                    ),
                ),
                (
                    "failed",
                    models.DateTimeField(
                        blank=True,
                        help_text="Time of the most recent failure",
                        null=True,
                    ),
                ),
                (
                    "last_response",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Response body from the last failed attempt",
                    ),
                ),
                (
                    "failure_history",
                    models.JSONField(
                        default=list,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        help_text="Information about previous failures of the task, if any",
                    ),
                ),
                (
                    "artifact",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="redirect_tasks",
                        to="filelibrary.artifact",
                    ),
                ),
            ],
            options={
                "ordering": ("created", "pk"),
                "indexes": [
                    models.Index(
                        fields=["status", "next_attempt_at"],
                        name="importer_redirect_due",
                    )
                ],
            },
        ),
    ]
