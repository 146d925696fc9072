"""
Resolution of manifest resources against the extracted archive

Bibliographic resources become stored artifacts, are linked to the entities
which reference them and get a redirect task. Location resources only get a
redirect task.
"""

from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from urllib.parse import unquote

from django.core.exceptions import ValidationError
from django.core.validators import URLValidator

from filelibrary.logging import FileLibraryLogger

from .exceptions import ReferencedFileMissing
from .graph import ADDRESSING_URL, BIBLIOGRAPHIC_RESOURCE, LOCATION, lexical_form

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)

FILE_SCHEME = "file://"
SUCCESS_MESSAGE = "File has been imported successfully."
INVALID_URLS_MESSAGE = (
    "File has been imported successfully, here are a couple of wrong provided "
    "urls: %s"
)

validate_url = URLValidator()


def is_valid_url(value) -> bool:
    try:
        validate_url(str(value))
    except ValidationError:
        return False
    return True


@dataclass
class ImportResult:
    imported_count: int = 0
    failed_count: int = 0
    invalid_urls: list[str] = field(default_factory=list)

    @property
    def message(self):
        if self.invalid_urls:
            return INVALID_URLS_MESSAGE % ", ".join(self.invalid_urls)
        return SUCCESS_MESSAGE

    def as_dict(self):
        return {
            "message": self.message,
            "imported": self.imported_count,
            "failed": self.failed_count,
            "invalid_urls": list(self.invalid_urls),
        }


class ResourceResolver:
    def __init__(
        self,
        graph,
        working_directory,
        *,
        file_store,
        linker,
        queue,
        owner_id=None,
        include_locations=True,
    ):
        self.graph = graph
        self.working_directory = Path(working_directory).resolve()
        self.file_store = file_store
        self.linker = linker
        self.queue = queue
        self.owner_id = owner_id
        self.include_locations = include_locations

    def resolve(self) -> ImportResult:
        result = ImportResult()
        self.import_bibliographic_resources(result)
        if self.include_locations:
            self.import_location_resources(result)
        return result

    def payload_path(self, location) -> Path:
        """
        Map a ``file://`` location from the manifest onto the working directory.

        Raises:
            ReferencedFileMissing: If the location is empty, the file doesn't
                exist or the path points outside the working directory.
        """
        if location is None or not str(location).strip():
            raise ReferencedFileMissing(
                "Referenced file not found. A bibliographic resource has no file "
                "location."
            )

        location = lexical_form(location).strip()
        relative = unquote(location.removeprefix(FILE_SCHEME))

        # Absolute paths inside the working directory are accepted as they
        # are, anything else is relative to the extraction root
        absolute = Path(relative).resolve()
        if Path(relative).is_absolute() and absolute.is_relative_to(
            self.working_directory
        ):
            candidate = absolute
        else:
            candidate = (self.working_directory / relative.lstrip("/")).resolve()

        inside = candidate.is_relative_to(self.working_directory)
        if not inside or not candidate.is_file():
            structured_logger.error(
                "Reference file doesn't exist.",
                event_code="referenced_file_missing",
                reason=f"{location} is not a file in the archive",
                reason_code="referenced_file_missing",
                location=location,
            )
            raise ReferencedFileMissing(
                f"Referenced file '{location}' not found. Make sure file exists in "
                "archive and the name is correct."
            )
        return candidate

    def import_bibliographic_resources(self, result: ImportResult):
        logger.info("Import of files started")
        imported = failed = 0

        for resource in self.graph.all_of_type(BIBLIOGRAPHIC_RESOURCE):
            path = self.payload_path(self.graph.value(resource, ADDRESSING_URL))

            reference_url = lexical_form(resource)
            if not is_valid_url(reference_url):
                structured_logger.warning(
                    "Resource skipped.",
                    event_code="resource_skipped",
                    reason="Identity URI is not a valid absolute URL.",
                    reason_code="invalid_uri",
                    uri=reference_url,
                )
                result.invalid_urls.append(reference_url)
                continue

            stored = self.file_store.save(path, self.owner_id, reference_url)
            if stored is None:
                logger.error("File %s save failed", reference_url)
                failed += 1
                continue

            self.linker.attach(stored.artifact_id, reference_url)
            self.queue.enqueue(
                reference_url, stored.public_url, artifact_id=stored.artifact_id
            )
            imported += 1

        result.imported_count += imported
        result.failed_count += failed
        logger.info(
            "Import of files finished. Imported %d items, %d failed", imported, failed
        )

    def import_location_resources(self, result: ImportResult):
        logger.info("Import of locations started")
        imported = failed = 0

        for resource in self.graph.all_of_type(LOCATION):
            reference_url = lexical_form(resource)
            redirect_url = self.graph.value(resource, ADDRESSING_URL)

            if redirect_url is None or not lexical_form(redirect_url).strip():
                structured_logger.warning(
                    "Location skipped.",
                    event_code="location_skipped",
                    reason="Redirect url missing",
                    reason_code="redirect_url_missing",
                    uri=reference_url,
                )
                failed += 1
                continue

            if not is_valid_url(reference_url):
                result.invalid_urls.append(reference_url)
                continue

            self.queue.enqueue(reference_url, lexical_form(redirect_url).strip())
            imported += 1

        result.imported_count += imported
        result.failed_count += failed
        logger.info(
            "Import of locations finished. Imported %d items, %d failed",
            imported,
            failed,
        )
