from django.conf import settings
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from filelibrary.storage import get_artifact_storage


class ArtifactQuerySet(models.QuerySet):
    def published(self):
        return self.filter(published=True)

    def unpublished(self):
        return self.filter(published=False)


class Artifact(models.Model):
    """
    A payload file taken from an import archive plus its publishable wrapper.

    Artifacts are created unpublished and are only published once the
    redirect service has confirmed the redirect for ``origin_url``.
    """

    class MediaType(models.TextChoices):
        FILE = "file", "File"
        HTML = "html", "HTML"

    created = models.DateTimeField(auto_now_add=True)
    modified = models.DateTimeField(auto_now=True)

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL
    )

    file = models.FileField(storage=get_artifact_storage, max_length=500)
    filename = models.CharField(max_length=255)
    origin_url = models.URLField(
        max_length=2000, help_text="Reference URL of the resource in the manifest"
    )
    media_type = models.CharField(
        max_length=10, choices=MediaType.choices, default=MediaType.FILE
    )
    published = models.BooleanField(default=False)

    objects = ArtifactQuerySet.as_manager()

    def __str__(self):
        return "Artifact(filename=%s, origin_url=%s)" % (self.filename, self.origin_url)

    def publish(self):
        """
        Mark the artifact published. Returns True only for the call which
        performed the transition, so repeated deliveries are harmless.
        """
        updated = Artifact.objects.filter(pk=self.pk, published=False).update(
            published=True
        )
        if updated:
            self.published = True
        return bool(updated)


class ReferencingEntity(models.Model):
    """
    A domain record which references resources in import manifests by an
    embedded UUID and accumulates the ids of the artifacts attached to it.
    """

    created = models.DateTimeField(auto_now_add=True)
    modified = models.DateTimeField(auto_now=True)

    kind = models.CharField(max_length=50, db_index=True)
    uuid = models.CharField(max_length=255, db_index=True)
    title = models.CharField(max_length=255, blank=True, default="")

    file_ids = models.JSONField(
        default=list, blank=True, help_text="Ordered ids of attached artifacts"
    )
    version = models.PositiveIntegerField(
        default=0, help_text="Incremented every time the file list changes"
    )

    class Meta:
        verbose_name_plural = "referencing entities"
        indexes = [
            models.Index(fields=["kind", "uuid"], name="filelibrary_entity_kind_uuid")
        ]

    def __str__(self):
        return "ReferencingEntity(kind=%s, uuid=%s)" % (self.kind, self.uuid)

    def attach_artifact(self, artifact_id):
        """
        Append ``artifact_id`` to the file list.

        The row is re-read under a lock so that two imports attaching files
        to the same entity at the same time can't drop each other's update.
        Returns False if the artifact was already attached.
        """
        with transaction.atomic():
            locked = ReferencingEntity.objects.select_for_update().get(pk=self.pk)
            if artifact_id in locked.file_ids:
                self.file_ids = locked.file_ids
                self.version = locked.version
                return False
            file_ids = locked.file_ids + [artifact_id]
            ReferencingEntity.objects.filter(pk=self.pk).update(
                file_ids=file_ids, version=F("version") + 1, modified=timezone.now()
            )
        self.refresh_from_db(fields=["file_ids", "version", "modified"])
        return True
