"""
Durable queue of redirect registrations and the worker which performs them

Status transitions of a RedirectTask::

    pending ----> processing ----> published
                      ^    \\
                      |     '----> retrying ----> failed
                      '--------------'

A task is claimed (``processing``) by one consumer at a time. When the worker
raises RedirectRegistrationError the task goes to ``retrying`` with an
exponential backoff, or to ``failed`` once MAX_ATTEMPTS have been used. A
consumer which dies mid-task leaves it ``processing``; it becomes claimable
again after VISIBILITY_TIMEOUT seconds, so delivery is at-least-once.
"""

import time
from dataclasses import dataclass, fields
from datetime import timedelta
from logging import getLogger

import requests
from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from configuration.models import Configuration
from configuration.utils import configuration_value
from filelibrary.logging import FileLibraryLogger
from filelibrary.models import Artifact

from .exceptions import RedirectRegistrationError
from .models import RedirectTask

logger = getLogger(__name__)
structured_logger = FileLibraryLogger.get_logger(__name__)

PRODUCTION = "production"


@dataclass(frozen=True)
class RedirectServiceConfig:
    production_url: str = ""
    staging_url: str = ""
    service_name: str = ""
    hash: str = ""

    @classmethod
    def load(cls) -> "RedirectServiceConfig":
        try:
            value = configuration_value(settings.REDIRECT_SERVICE_CONFIGURATION_KEY)
        except Configuration.DoesNotExist:
            logger.warning(
                "No %s configuration record exists",
                settings.REDIRECT_SERVICE_CONFIGURATION_KEY,
            )
            value = {}

        if not isinstance(value, dict):
            value = {}

        return cls(
            **{
                config_field.name: str(value.get(config_field.name) or "")
                for config_field in fields(cls)
            }
        )

    def base_url(self, environment=None):
        if environment is None:
            environment = settings.FILELIBRARY_ENVIRONMENT
        if environment == PRODUCTION:
            return self.production_url
        return self.staging_url

    def endpoint(self, environment=None):
        url = self.base_url(environment)
        return url + ("redirect" if url.endswith("/") else "/redirect")


class RedirectWorker:
    def __init__(self, config=None, session=None, timeout=None, clock=timezone.now):
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout or settings.REDIRECT_SERVICE_TIMEOUT
        self.clock = clock

    def get_config(self) -> RedirectServiceConfig:
        # Loaded per task so edits in the admin apply without a restart
        return self.config or RedirectServiceConfig.load()

    def process(self, task: RedirectTask):
        """
        Register ``task`` with the redirect service and publish its artifact.

        Raises:
            RedirectRegistrationError: If either URL is missing or the service
                didn't answer with HTTP 200. Retrying is up to the caller.
        """
        task_logger = structured_logger.bind(redirect_task=task)
        timestamp = self.clock().strftime("%Y-%m-%d %H:%M:%S")

        if not task.real_url or not task.redirect_url:
            task_logger.error(
                "Missing Real and Redirect url in sent data.",
                event_code="redirect_task_incomplete",
                reason=f"RealUrl: {task.real_url!r}, RedirectUrl: "
                f"{task.redirect_url!r}, Date: {timestamp}",
                reason_code="missing_urls",
            )
            raise RedirectRegistrationError(
                "Missing Real and Redirect url in sent data."
            )

        config = self.get_config()
        status_code = None
        body = ""
        try:
            response = self.session.post(
                config.endpoint(),
                params={
                    "RealUrl": task.real_url,
                    "RedirectUrl": task.redirect_url,
                    "status": "true",
                },
                auth=(config.service_name, config.hash),
                timeout=self.timeout,
            )
            status_code = response.status_code
            if status_code != 200:
                body = response.text
        except requests.RequestException as exc:
            logger.warning(
                "Request to redirect service for %s raised %s", task.real_url, exc
            )

        if status_code == 200:
            self.publish_artifact(task)
            task_logger.info("Redirect registered.", event_code="redirect_registered")
            return

        task_logger.error(
            "Request to redirect service failed.",
            event_code="redirect_registration_failed",
            reason=f"RealUrl: {task.real_url}, RedirectUrl: {task.redirect_url}, "
            f"Response: {body}, Date: {timestamp}",
            reason_code=f"http_{status_code}" if status_code else "transport_error",
            response=body,
        )
        raise RedirectRegistrationError(
            "Request to redirect service failed.", response=body
        )

    def publish_artifact(self, task):
        if not task.artifact_id:
            return False
        artifact = Artifact.objects.filter(pk=task.artifact_id).first()
        if artifact is None:
            logger.warning(
                "Artifact %s for %s no longer exists", task.artifact_id, task.real_url
            )
            return False
        if artifact.publish():
            structured_logger.info(
                "Artifact published.", event_code="artifact_published", artifact=artifact
            )
            return True
        return False


class RedirectQueue:
    def __init__(
        self,
        *,
        max_attempts=None,
        backoff=None,
        backoff_max=None,
        visibility_timeout=None,
        clock=timezone.now,
        timer=time.monotonic,
    ):
        queue_settings = settings.REDIRECT_QUEUE
        self.max_attempts = max_attempts or queue_settings["MAX_ATTEMPTS"]
        self.backoff = backoff if backoff is not None else queue_settings["BACKOFF"]
        self.backoff_max = backoff_max or queue_settings["BACKOFF_MAX"]
        if visibility_timeout is None:
            visibility_timeout = queue_settings["VISIBILITY_TIMEOUT"]
        self.visibility_timeout = visibility_timeout
        self.clock = clock
        self.timer = timer

    def enqueue(self, real_url, redirect_url, artifact_id=None) -> RedirectTask:
        task = RedirectTask.objects.create(
            real_url=real_url, redirect_url=redirect_url, artifact_id=artifact_id
        )
        structured_logger.debug(
            "Redirect task queued.", event_code="redirect_task_queued", redirect_task=task
        )
        return task

    def due(self):
        now = self.clock()
        stalled_before = now - timedelta(seconds=self.visibility_timeout)
        return RedirectTask.objects.filter(
            Q(status=RedirectTask.Status.PENDING)
            | Q(status=RedirectTask.Status.RETRYING, next_attempt_at__lte=now)
            | Q(status=RedirectTask.Status.PROCESSING, last_started__lt=stalled_before)
        ).order_by("created", "pk")

    def claim(self) -> RedirectTask | None:
        """
        Mark the oldest due task as processing and return it, or None.

        Rows locked by another consumer are skipped rather than waited for. A
        stalled task which has used up its attempts is failed instead of being
        handed out again.
        """
        while True:
            with transaction.atomic():
                task = self.due().select_for_update(skip_locked=True).first()
                if task is None:
                    return None

                if (
                    task.status == RedirectTask.Status.PROCESSING
                    and task.attempts >= self.max_attempts
                ):
                    self.fail(task, "Visibility timeout exceeded")
                    continue

                task.status = RedirectTask.Status.PROCESSING
                task.attempts += 1
                task.last_started = self.clock()
                task.save(
                    update_fields=["status", "attempts", "last_started", "modified"]
                )
                return task

    def complete(self, task):
        task.status = RedirectTask.Status.PUBLISHED
        task.completed = self.clock()
        task.next_attempt_at = None
        task.save()

    def backoff_for(self, attempts):
        return min(self.backoff * 2 ** max(attempts - 1, 0), self.backoff_max)

    def fail(self, task, reason, response=""):
        now = self.clock()
        task.failed = now
        task.last_response = response
        task.update_failure_history(reason, response, do_save=False)

        if task.attempts >= self.max_attempts:
            task.status = RedirectTask.Status.FAILED
            task.next_attempt_at = None
            structured_logger.error(
                "Redirect task abandoned.",
                event_code="redirect_task_failed",
                reason=reason,
                reason_code="retries_exhausted",
                redirect_task=task,
                attempts=task.attempts,
            )
        else:
            delay = self.backoff_for(task.attempts)
            task.status = RedirectTask.Status.RETRYING
            task.next_attempt_at = now + timedelta(seconds=delay)
            structured_logger.warning(
                "Redirect task will be retried.",
                event_code="redirect_task_retry_scheduled",
                reason=reason,
                reason_code="redirect_registration_failed",
                redirect_task=task,
                attempts=task.attempts,
                retry_in=delay,
            )
        task.save()

    def process(self, task, worker) -> bool:
        """
        Run ``worker`` on a claimed task and record the outcome.

        Returns True if the task was published. Exceptions other than
        RedirectRegistrationError are recorded as a failure and re-raised.
        """
        try:
            worker.process(task)
        except RedirectRegistrationError as exc:
            self.fail(task, str(exc), response=exc.response)
            return False
        except Exception as exc:
            self.fail(task, "Unhandled exception: %s" % exc)
            raise
        self.complete(task)
        return True

    def drain(self, worker, time_budget=None) -> int:
        """
        Process due tasks one at a time until none are left or
        ``time_budget`` seconds have passed. Returns the number processed.
        """
        if time_budget is None:
            time_budget = settings.REDIRECT_QUEUE["TIME_BUDGET"]

        started = self.timer()
        processed = 0
        while self.timer() - started < time_budget:
            task = self.claim()
            if task is None:
                break
            self.process(task, worker)
            processed += 1

        if processed:
            logger.info("Processed %d redirect task(s)", processed)
        return processed
