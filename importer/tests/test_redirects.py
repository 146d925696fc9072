from datetime import datetime, timedelta, timezone
from unittest import mock

import requests
from django.core.cache import caches
from django.test import TestCase, override_settings

from configuration.models import Configuration
from filelibrary.models import Artifact
from importer.exceptions import RedirectRegistrationError
from importer.models import RedirectTask
from importer.redirects import RedirectQueue, RedirectServiceConfig, RedirectWorker

from .utils import (
    configure_redirect_service,
    create_artifact,
    create_redirect_task,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def service_response(status_code=200, text=""):
    return mock.Mock(status_code=status_code, text=text)


class RedirectServiceConfigTests(TestCase):
    def setUp(self):
        caches["configuration_cache"].clear()

    def test_default_record(self):
        self.assertEqual(RedirectServiceConfig.load(), RedirectServiceConfig())

    def test_load(self):
        configure_redirect_service(hash="abc")

        config = RedirectServiceConfig.load()

        self.assertEqual(config.production_url, "https://redirects.example.com/")
        self.assertEqual(config.service_name, "filelibrary")
        self.assertEqual(config.hash, "abc")

    def test_missing_record(self):
        Configuration.objects.filter(key="redirect_service").delete()

        self.assertEqual(RedirectServiceConfig.load(), RedirectServiceConfig())

    def test_endpoint(self):
        config = RedirectServiceConfig(
            production_url="https://redirects.example.com/",
            staging_url="https://staging-redirects.example.com",
        )

        self.assertEqual(
            config.endpoint("production"), "https://redirects.example.com/redirect"
        )
        self.assertEqual(
            config.endpoint("staging"),
            "https://staging-redirects.example.com/redirect",
        )

    @override_settings(FILELIBRARY_ENVIRONMENT="production")
    def test_endpoint_uses_environment(self):
        config = RedirectServiceConfig(
            production_url="https://redirects.example.com",
            staging_url="https://staging-redirects.example.com",
        )

        self.assertEqual(config.endpoint(), "https://redirects.example.com/redirect")


class RedirectWorkerTests(TestCase):
    def setUp(self):
        caches["configuration_cache"].clear()
        configure_redirect_service()
        self.session = mock.Mock()
        self.session.post.return_value = service_response()
        self.worker = RedirectWorker(session=self.session, clock=Clock())

    def test_success_publishes_artifact(self):
        artifact = create_artifact()
        task = create_redirect_task(artifact=artifact)

        self.worker.process(task)

        self.session.post.assert_called_once_with(
            "https://staging-redirects.example.com/redirect",
            params={
                "RealUrl": "https://example.org/doc/1",
                "RedirectUrl": "https://files.example.org/media/payload.txt",
                "status": "true",
            },
            auth=("filelibrary", "s3cr3t"),
            timeout=30,
        )
        artifact.refresh_from_db()
        self.assertTrue(artifact.published)

    @override_settings(FILELIBRARY_ENVIRONMENT="production")
    def test_production_endpoint(self):
        self.worker.process(create_redirect_task())

        self.assertEqual(
            self.session.post.call_args.args[0],
            "https://redirects.example.com/redirect",
        )

    def test_artifact_published_once(self):
        artifact = create_artifact()
        task = create_redirect_task(artifact=artifact)

        self.assertTrue(self.worker.publish_artifact(task))
        self.assertFalse(self.worker.publish_artifact(task))

        artifact.refresh_from_db()
        self.assertTrue(artifact.published)

    def test_location_task_without_artifact(self):
        self.worker.process(create_redirect_task())

        self.session.post.assert_called_once()

    def test_non_200(self):
        self.session.post.return_value = service_response(500, "Internal error")
        artifact = create_artifact()
        task = create_redirect_task(artifact=artifact)

        with self.assertRaises(RedirectRegistrationError) as context:
            self.worker.process(task)

        self.assertEqual(context.exception.response, "Internal error")
        artifact.refresh_from_db()
        self.assertFalse(artifact.published)

    def test_transport_error(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        artifact = create_artifact()

        with self.assertRaises(RedirectRegistrationError) as context:
            self.worker.process(create_redirect_task(artifact=artifact))

        self.assertEqual(context.exception.response, "")
        artifact.refresh_from_db()
        self.assertFalse(artifact.published)

    def test_missing_urls(self):
        task = create_redirect_task(redirect_url="")

        with self.assertRaisesMessage(
            RedirectRegistrationError, "Missing Real and Redirect url in sent data."
        ):
            self.worker.process(task)

        self.session.post.assert_not_called()

    def test_deleted_artifact(self):
        artifact = create_artifact()
        task = create_redirect_task(artifact=artifact)
        Artifact.objects.filter(pk=artifact.pk).delete()
        task.artifact_id = artifact.pk

        self.worker.process(task)

        self.assertFalse(Artifact.objects.exists())


@override_settings(
    REDIRECT_QUEUE={
        "MAX_ATTEMPTS": 3,
        "BACKOFF": 60,
        "BACKOFF_MAX": 150,
        "VISIBILITY_TIMEOUT": 600,
        "TIME_BUDGET": 30,
    }
)
class RedirectQueueTests(TestCase):
    def setUp(self):
        self.clock = Clock()
        self.queue = RedirectQueue(clock=self.clock)

    def test_enqueue(self):
        artifact = create_artifact()

        task = self.queue.enqueue(
            "https://example.org/doc/1", "https://example.org/r", artifact.pk
        )

        self.assertEqual(task.status, RedirectTask.Status.PENDING)
        self.assertEqual(task.attempts, 0)
        self.assertEqual(task.artifact, artifact)

    def test_claim_in_creation_order(self):
        first = self.queue.enqueue("https://example.org/1", "https://example.org/r1")
        second = self.queue.enqueue("https://example.org/2", "https://example.org/r2")

        claimed = self.queue.claim()

        self.assertEqual(claimed, first)
        self.assertEqual(claimed.status, RedirectTask.Status.PROCESSING)
        self.assertEqual(claimed.attempts, 1)
        self.assertEqual(claimed.last_started, NOW)
        self.assertEqual(self.queue.claim(), second)
        self.assertIsNone(self.queue.claim())

    def test_retrying_task_waits_for_backoff(self):
        self.queue.enqueue("https://example.org/1", "https://example.org/r1")
        task = self.queue.claim()
        self.queue.fail(task, "Request to redirect service failed.")

        self.assertIsNone(self.queue.claim())

        self.clock.advance(seconds=60)
        claimed = self.queue.claim()
        self.assertEqual(claimed, task)
        self.assertEqual(claimed.attempts, 2)

    def test_stalled_task_is_reclaimed(self):
        self.queue.enqueue("https://example.org/1", "https://example.org/r1")
        task = self.queue.claim()

        self.clock.advance(seconds=599)
        self.assertIsNone(self.queue.claim())

        self.clock.advance(seconds=2)
        self.assertEqual(self.queue.claim(), task)

    def test_stalled_task_without_attempts_left_is_failed(self):
        stalled = create_redirect_task(
            status=RedirectTask.Status.PROCESSING, attempts=3, last_started=NOW
        )
        waiting = self.queue.enqueue("https://example.org/2", "https://example.org/r2")

        self.clock.advance(seconds=601)
        self.assertEqual(self.queue.claim(), waiting)

        stalled.refresh_from_db()
        self.assertEqual(stalled.status, RedirectTask.Status.FAILED)
        self.assertEqual(stalled.attempts, 3)
        self.assertEqual(
            stalled.failure_history[0]["reason"], "Visibility timeout exceeded"
        )
        self.assertIsNone(self.queue.claim())

    def test_fail_schedules_exponential_backoff(self):
        task = create_redirect_task(status=RedirectTask.Status.PROCESSING, attempts=1)

        self.queue.fail(task, "Request to redirect service failed.", "Bad gateway")

        task.refresh_from_db()
        self.assertEqual(task.status, RedirectTask.Status.RETRYING)
        self.assertEqual(task.next_attempt_at, NOW + timedelta(seconds=60))
        self.assertEqual(task.failed, NOW)
        self.assertEqual(task.last_response, "Bad gateway")
        self.assertEqual(len(task.failure_history), 1)
        self.assertEqual(task.failure_history[0]["attempt"], 1)
        self.assertEqual(task.failure_history[0]["response"], "Bad gateway")

    def test_backoff_for(self):
        self.assertEqual(self.queue.backoff_for(1), 60)
        self.assertEqual(self.queue.backoff_for(2), 120)
        self.assertEqual(self.queue.backoff_for(3), 150)

    def test_fail_after_max_attempts(self):
        task = create_redirect_task(status=RedirectTask.Status.PROCESSING, attempts=3)

        self.queue.fail(task, "Request to redirect service failed.")

        task.refresh_from_db()
        self.assertEqual(task.status, RedirectTask.Status.FAILED)
        self.assertIsNone(task.next_attempt_at)

        self.clock.advance(days=1)
        self.assertIsNone(self.queue.claim())

    def test_process_success(self):
        worker = mock.Mock(spec=RedirectWorker)
        self.queue.enqueue("https://example.org/1", "https://example.org/r1")
        task = self.queue.claim()

        self.assertTrue(self.queue.process(task, worker))

        worker.process.assert_called_once_with(task)
        task.refresh_from_db()
        self.assertEqual(task.status, RedirectTask.Status.PUBLISHED)
        self.assertEqual(task.completed, NOW)

    def test_process_registration_failure(self):
        worker = mock.Mock(spec=RedirectWorker)
        worker.process.side_effect = RedirectRegistrationError(
            "Request to redirect service failed.", response="nope"
        )
        self.queue.enqueue("https://example.org/1", "https://example.org/r1")
        task = self.queue.claim()

        self.assertFalse(self.queue.process(task, worker))

        task.refresh_from_db()
        self.assertEqual(task.status, RedirectTask.Status.RETRYING)
        self.assertEqual(task.last_response, "nope")

    def test_process_unexpected_error(self):
        worker = mock.Mock(spec=RedirectWorker)
        worker.process.side_effect = ValueError("boom")
        self.queue.enqueue("https://example.org/1", "https://example.org/r1")
        task = self.queue.claim()

        with self.assertRaises(ValueError):
            self.queue.process(task, worker)

        task.refresh_from_db()
        self.assertEqual(task.status, RedirectTask.Status.RETRYING)
        self.assertEqual(
            task.failure_history[0]["reason"], "Unhandled exception: boom"
        )

    def test_drain(self):
        worker = mock.Mock(spec=RedirectWorker)
        worker.process.side_effect = [
            None,
            RedirectRegistrationError("Request to redirect service failed."),
            None,
        ]
        for index in range(3):
            self.queue.enqueue(
                f"https://example.org/{index}", f"https://example.org/r{index}"
            )

        self.assertEqual(self.queue.drain(worker, time_budget=30), 3)

        self.assertEqual(
            list(RedirectTask.objects.order_by("pk").values_list("status", flat=True)),
            [
                RedirectTask.Status.PUBLISHED,
                RedirectTask.Status.RETRYING,
                RedirectTask.Status.PUBLISHED,
            ],
        )

    def test_drain_stops_when_time_budget_is_spent(self):
        timer = mock.Mock(side_effect=[0, 0, 10, 31])
        queue = RedirectQueue(clock=self.clock, timer=timer)
        worker = mock.Mock(spec=RedirectWorker)
        for index in range(3):
            queue.enqueue(f"https://example.org/{index}", "https://example.org/r")

        self.assertEqual(queue.drain(worker, time_budget=30), 2)

        self.assertEqual(
            RedirectTask.objects.filter(status=RedirectTask.Status.PENDING).count(), 1
        )

    def test_drain_empty_queue(self):
        worker = mock.Mock(spec=RedirectWorker)

        self.assertEqual(self.queue.drain(worker), 0)
        worker.process.assert_not_called()
