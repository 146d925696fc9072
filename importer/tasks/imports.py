from logging import getLogger

from filelibrary.celery import app as celery_app
from importer.pipeline import ImportPipeline

logger = getLogger(__name__)


@celery_app.task
def import_archive(archive_path, profile=None, owner_id=None):
    """
    Run the import pipeline for an archive on local disk.

    Returns the ImportResult as a dict. ImportFailure propagates so the
    task is recorded as failed.
    """
    logger.info("Importing %s with profile %s", archive_path, profile or "default")
    return ImportPipeline(profile).run(archive_path, owner_id=owner_id).as_dict()
