import shutil
from datetime import datetime, timedelta
from logging import getLogger
from pathlib import Path

from django.conf import settings
from django.utils import timezone

from filelibrary.celery import app as celery_app
from filelibrary.logging import FileLibraryLogger
from importer.archive import RUN_DIRECTORY_PREFIX

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)


@celery_app.task(ignore_result=True)
def purge_working_directories(max_age_hours=None):
    """
    Remove import working directories older than ``max_age_hours``.

    Directories are normally removed at the end of each run; this catches
    retained directories and those left behind by crashed workers. Only
    directories created by the importer are considered.
    """
    if max_age_hours is None:
        max_age_hours = settings.IMPORTER["WORKING_DIRECTORY_MAX_AGE_HOURS"]

    root = Path(settings.IMPORTER["WORKING_DIRECTORY"])
    if not root.is_dir():
        return 0

    cutoff = timezone.now() - timedelta(hours=max_age_hours)
    removed = 0
    for directory in root.glob(f"{RUN_DIRECTORY_PREFIX}*"):
        if not directory.is_dir():
            continue
        modified = datetime.fromtimestamp(
            directory.stat().st_mtime, tz=timezone.get_current_timezone()
        )
        if modified >= cutoff:
            continue
        shutil.rmtree(directory, ignore_errors=True)
        removed += 1
        structured_logger.info(
            "Removed stale working directory.",
            event_code="working_directory_purged",
            directory=str(directory),
        )

    logger.info("Purged %d working directories from %s", removed, root)
    return removed
