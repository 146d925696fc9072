from logging import getLogger

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

logger = getLogger(__name__)


class RedirectTask(models.Model):
    """
    A pending registration of ``real_url`` -> ``redirect_url`` with the
    redirect service, optionally publishing an artifact once it succeeds.

    Tasks are handled by importer.redirects.RedirectQueue; see its docstring
    for the status transitions.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        RETRYING = "retrying", "Retrying"
        PUBLISHED = "published", "Published"
        FAILED = "failed", "Failed"

    created = models.DateTimeField(auto_now_add=True)
    modified = models.DateTimeField(auto_now=True)

    real_url = models.URLField(max_length=2000)
    redirect_url = models.URLField(max_length=2000)
    artifact = models.ForeignKey(
        "filelibrary.Artifact",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="redirect_tasks",
    )

    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    attempts = models.PositiveIntegerField(
        help_text="Number of times a worker has picked up this task", default=0
    )
    next_attempt_at = models.DateTimeField(
        help_text="Earliest time a retrying task may be picked up again",
        null=True,
        blank=True,
    )

    last_started = models.DateTimeField(
        help_text="Last time when a worker started processing this task",
        null=True,
        blank=True,
    )
    completed = models.DateTimeField(
        help_text="Time when the redirect was registered", null=True, blank=True
    )
    failed = models.DateTimeField(
        help_text="Time of the most recent failure", null=True, blank=True
    )
    last_response = models.TextField(
        help_text="Response body from the last failed attempt", blank=True, default=""
    )
    failure_history = models.JSONField(
        help_text="Information about previous failures of the task, if any",
        encoder=DjangoJSONEncoder,
        default=list,
    )

    class Meta:
        ordering = ("created", "pk")
        indexes = [
            models.Index(
                fields=["status", "next_attempt_at"], name="importer_redirect_due"
            )
        ]

    def __str__(self):
        return "RedirectTask(real_url=%s, status=%s)" % (self.real_url, self.status)

    def update_failure_history(self, reason, response="", do_save=True):
        self.failure_history.append(
            {
                "failed": self.failed,
                "attempt": self.attempts,
                "reason": reason,
                "response": response,
            }
        )
        if do_save:
            self.save()
