"""
Extraction of uploaded import archives into per-run working directories
"""

import shutil
import subprocess  # nosec B404
import tempfile
import zipfile
from logging import getLogger
from pathlib import Path

from django.conf import settings
from django.utils import timezone

from filelibrary.logging import FileLibraryLogger

from .exceptions import ExtractionError, ManifestMissingError

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)

#: Every run directory starts with this so housekeeping never touches
#: anything else living in the working directory
RUN_DIRECTORY_PREFIX = "filelibrary-"


class ArchiveExtractor:
    def __init__(
        self,
        working_directory=None,
        splitter_path=None,
        splitter_timeout=None,
        clock=timezone.now,
    ):
        importer_settings = settings.IMPORTER
        self.working_directory = Path(
            working_directory or importer_settings["WORKING_DIRECTORY"]
        )
        if splitter_path is None:
            splitter_path = importer_settings.get("SPLITTER_PATH", "")
        self.splitter_path = splitter_path
        self.splitter_timeout = splitter_timeout or importer_settings.get(
            "SPLITTER_TIMEOUT", 600
        )
        self.clock = clock

    def create_run_directory(self) -> Path:
        self.working_directory.mkdir(parents=True, exist_ok=True)
        prefix = "%s%s-" % (RUN_DIRECTORY_PREFIX, self.clock().strftime("%Y%m%d%H%M%S"))
        return Path(tempfile.mkdtemp(prefix=prefix, dir=self.working_directory))

    def extract(self, archive_path) -> Path:
        """
        Extract ``archive_path`` into a new run directory and return it.

        Raises:
            ExtractionError: If the archive can't be opened or read.
        """
        logger.info("Extracting archive %s", archive_path)
        run_directory = None
        try:
            with zipfile.ZipFile(archive_path) as archive:
                run_directory = self.create_run_directory()
                archive.extractall(run_directory)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
            structured_logger.error(
                "Archive extraction failed.",
                event_code="archive_extraction_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                archive_path=str(archive_path),
            )
            if run_directory is not None:
                self.cleanup(run_directory)
            raise ExtractionError("Failed extracting archive.") from exc

        logger.info("Extracted archive %s to %s", archive_path, run_directory)
        return run_directory

    def find_manifests(self, directory, pattern="*.n3") -> list[Path]:
        manifests = sorted(
            (path for path in Path(directory).rglob(pattern) if path.is_file()),
            key=lambda path: (path.name, str(path)),
        )
        if not manifests:
            raise ManifestMissingError("Couldn't find manifest file in archive.")
        return manifests

    def split(self, manifest_path) -> bool:
        """
        Run the external splitter on ``manifest_path``.

        The splitter writes ``*.split.n3`` fragments next to the manifest.
        Failures are logged and reported as False; whether the run can
        continue is decided when the fragments are loaded.
        """
        if not self.splitter_path:
            logger.info("No splitter configured, not splitting %s", manifest_path)
            return False

        manifest_path = Path(manifest_path)
        logger.info("Splitting %s with %s", manifest_path, self.splitter_path)
        try:
            subprocess.run(  # nosec B603
                [self.splitter_path, str(manifest_path)],
                cwd=manifest_path.parent,
                check=True,
                capture_output=True,
                timeout=self.splitter_timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            structured_logger.error(
                "Manifest splitter failed.",
                event_code="manifest_split_failed",
                reason=str(exc),
                reason_code=exc.__class__.__name__,
                manifest=str(manifest_path),
                splitter=str(self.splitter_path),
            )
            return False
        return True

    def cleanup(self, directory):
        logger.info("Removing working directory %s", directory)
        shutil.rmtree(directory, ignore_errors=True)
