from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from urllib.parse import urljoin

from botocore.exceptions import (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
)
from django.conf import settings
from django.core.exceptions import SuspiciousFileOperation
from django.core.files import File

from filelibrary.logging import FileLibraryLogger
from filelibrary.models import Artifact

from .exceptions import ArtifactStorageUnavailable

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)

STORAGE_UNAVAILABLE_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ConnectionClosedError,
)


@dataclass(frozen=True)
class StoredArtifact:
    artifact_id: int
    public_url: str


class FileStore:
    """
    Copies payload files from a working directory into artifact storage and
    records each one as an unpublished Artifact.
    """

    def __init__(self, storage_prefix, media_type=Artifact.MediaType.FILE, run_id=""):
        self.storage_prefix = storage_prefix.strip("/")
        self.media_type = media_type
        self.run_id = run_id

    def for_run(self, run_id) -> "FileStore":
        return FileStore(self.storage_prefix, media_type=self.media_type, run_id=run_id)

    def storage_name(self, filename):
        return "/".join(part for part in (self.storage_prefix, self.run_id, filename) if part)

    def public_url(self, artifact):
        return urljoin(settings.SITE_BASE_URL, artifact.file.url)

    def save(self, local_path, owner_id, origin_url) -> StoredArtifact | None:
        """
        Store ``local_path`` and return the new artifact's id and public URL.

        Returns None if the file couldn't be written.

        Raises:
            ArtifactStorageUnavailable: If the storage backend can't be reached.
        """
        local_path = Path(local_path)
        filename = local_path.name
        artifact = Artifact(
            owner_id=owner_id,
            filename=filename,
            origin_url=origin_url,
            media_type=self.media_type,
        )

        try:
            with local_path.open("rb") as payload:
                artifact.file.save(
                    self.storage_name(filename), File(payload, name=filename), save=False
                )
        except STORAGE_UNAVAILABLE_ERRORS as exc:
            structured_logger.error(
                "Artifact storage is unavailable.",
                event_code="artifact_storage_unavailable",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                origin_url=origin_url,
            )
            raise ArtifactStorageUnavailable(
                "Artifact storage is unavailable: %s" % exc
            ) from exc
        except (OSError, SuspiciousFileOperation) as exc:
            structured_logger.warning(
                "File save failed.",
                event_code="artifact_save_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                origin_url=origin_url,
                path=str(local_path),
            )
            return None

        artifact.save()
        public_url = self.public_url(artifact)

        structured_logger.info(
            "Artifact stored.",
            event_code="artifact_stored",
            artifact=artifact,
            public_url=public_url,
        )
        return StoredArtifact(artifact_id=artifact.pk, public_url=public_url)
