from logging import getLogger

from django.conf import settings
from django.db import transaction

from filelibrary.celery import app as celery_app
from filelibrary.logging import FileLibraryLogger
from importer.models import RedirectTask
from importer.redirects import RedirectQueue, RedirectWorker

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)


@celery_app.task(ignore_result=True)
def process_redirect_queue(time_budget=None):
    """
    Register due redirect tasks with the redirect service.

    Runs from Celery beat. Each run stops after ``time_budget`` seconds
    (``REDIRECT_QUEUE["TIME_BUDGET"]`` by default); whatever is left is picked
    up by the next run.
    """
    if time_budget is None:
        time_budget = settings.REDIRECT_QUEUE["TIME_BUDGET"]
    return RedirectQueue().drain(RedirectWorker(), time_budget=time_budget)


@celery_app.task
def process_redirect_task(pk):
    """
    Process a single redirect task right away, regardless of its schedule.

    Tasks which are already published or currently being processed by
    another consumer are left alone. Returns True if the task was published.
    """
    queue = RedirectQueue()
    with transaction.atomic():
        task = (
            RedirectTask.objects.select_for_update(skip_locked=True)
            .filter(pk=pk)
            .exclude(
                status__in=(
                    RedirectTask.Status.PUBLISHED,
                    RedirectTask.Status.PROCESSING,
                )
            )
            .first()
        )
        if task is None:
            logger.info("Redirect task %s is not available for processing", pk)
            return False
        task.status = RedirectTask.Status.PROCESSING
        task.attempts += 1
        task.last_started = queue.clock()
        task.save(update_fields=["status", "attempts", "last_started", "modified"])

    structured_logger.info(
        "Processing redirect task on request.",
        event_code="redirect_task_forced",
        redirect_task=task,
    )
    return queue.process(task, RedirectWorker())
