import threading
from datetime import timedelta
from unittest import skipIf
from unittest.mock import patch

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone

from accounts.models import Account, Plan
from core.exceptions import (
    InvalidParameters, InvalidState, InvalidTransition, NotFound, ProviderRejected, ProviderUnavailable,
    QuotaExceeded,
)
from idempotency.models import IdempotencyRecord
from jobs.models import GenerationJob
from jobs.services import registry
from jobs.services.orchestrator import JobOrchestrator, completion_key, summarize_failure
from limits.services.quota import quota_status
from providers.services.provider import BaseGenerationProvider, PollResult, ProviderStatus, SubmitResult
from providers.services.provider_mock import MockGenerationProvider
from usage.models import UsageEvent
from usage.services.metering import commit_usage

State = GenerationJob.State

DONE = PollResult(status=ProviderStatus.COMPLETED, progress_percent=100,
                  result_ref="https://cdn.example/rw-123.mp4", metadata={"duration": 6})


class StubRunway(BaseGenerationProvider):
    """Scripted video backend: fixed task id, poll answers replayed in order."""
    name = "runway"
    kind = "video"
    supports_cancel = True

    def __init__(self, *polls, submit_error=None):
        self.polls = list(polls)
        self.submit_error = submit_error
        self.submitted = []
        self.cancelled = []

    def submit(self, *, kind, parameters):
        self.submitted.append(parameters)
        if self.submit_error:
            raise self.submit_error
        return SubmitResult(provider_job_id="rw-123", estimated_seconds=120)

    def poll(self, provider_job_id):
        answer = self.polls.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def cancel(self, provider_job_id):
        self.cancelled.append(provider_job_id)
        return True


class OrchestratorTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.plan = Plan.objects.create(name="Studio", slug="studio", quotas={
            "image_monthly": 5, "video_seconds_monthly": 10,
            "voice_minutes_monthly": -1, "video_max_duration": 30,
        })
        self.account = Account.objects.create(owner_id="u1", plan=self.plan)

    def orchestrator(self, **providers):
        return JobOrchestrator(providers)

    def start_video(self, orch, duration=6, prompt="a lighthouse at dusk"):
        return orch.start_job(owner_id="u1", kind="video", provider="runway",
                              parameters={"prompt": prompt, "duration": duration, "resolution": "1080p"})


class StartJobTest(OrchestratorTestCase):
    def test_happy_path_commits_usage_once_on_completion(self):
        stub = StubRunway(PollResult(status=ProviderStatus.PROCESSING, progress_percent=40), DONE)
        orch = self.orchestrator(runway=stub)

        job = self.start_video(orch)
        self.assertEqual((job.state, job.provider_job_id, job.quantity), (State.PROCESSING, "rw-123", 6))
        self.assertFalse(UsageEvent.objects.exists())

        out = orch.reconcile(job.id)
        self.assertEqual((out["outcome"], out["progress_percent"]), ("progress", 40))
        self.assertEqual(registry.load(job.id).progress_percent, 40)

        out = orch.reconcile(job.id)
        self.assertEqual(out["outcome"], "completed")
        job = registry.load(job.id)
        self.assertEqual(job.state, State.COMPLETED)
        self.assertEqual(job.result, {"ref": "https://cdn.example/rw-123.mp4", "metadata": {"duration": 6}})

        event = UsageEvent.objects.get()
        self.assertEqual((event.owner_id, event.kind, event.amount, event.job_id), ("u1", "video", 6, str(job.id)))
        st = quota_status(self.account, "video")
        self.assertEqual((st.used, st.limit, st.remaining), (6, 10, 4))

    def test_quota_refusal_creates_nothing(self):
        commit_usage(owner_id="u1", kind="video", quantity=7, job_id="earlier")
        stub = StubRunway()
        with self.assertRaises(QuotaExceeded) as ctx:
            self.start_video(self.orchestrator(runway=stub))
        err = ctx.exception
        self.assertEqual((err.used, err.limit, err.remaining), (7, 10, 3))
        self.assertEqual(err.reason, "Video limit exceeded. 7/10 seconds used this month.")
        self.assertFalse(GenerationJob.objects.exists())
        self.assertEqual(stub.submitted, [])

    def test_inactive_account_refused(self):
        self.account.status = Account.STATUS_CANCELED
        self.account.save()
        with self.assertRaises(QuotaExceeded) as ctx:
            self.start_video(self.orchestrator(runway=StubRunway()))
        self.assertEqual(ctx.exception.reason, "Subscription is not active")

    def test_invalid_parameters(self):
        orch = self.orchestrator(runway=StubRunway())
        with self.assertRaises(InvalidParameters):
            self.start_video(orch, duration=0)
        with self.assertRaises(InvalidParameters):
            orch.start_job(owner_id="u1", kind="image", provider="runway", parameters={"prompt": "x"})
        self.assertFalse(GenerationJob.objects.exists())

    def test_rejected_submission_fails_job_without_usage(self):
        stub = StubRunway(submit_error=ProviderRejected("runway rejected the request (HTTP 400: bad prompt)"))
        with self.assertRaises(ProviderRejected):
            self.start_video(self.orchestrator(runway=stub))
        job = GenerationJob.objects.get()
        self.assertEqual(job.state, State.FAILED)
        self.assertEqual(job.failure_reason, "Submission failed: runway rejected the request (HTTP 400: bad prompt)")
        self.assertFalse(UsageEvent.objects.exists())

    def test_unexpected_submit_error_fails_job(self):
        stub = StubRunway(submit_error=RuntimeError("boom"))
        with self.assertRaises(RuntimeError):
            self.start_video(self.orchestrator(runway=stub))
        self.assertEqual(GenerationJob.objects.get().failure_reason, "Submission failed: internal error")

    def test_synchronous_provider_completes_immediately(self):
        dalle = MockGenerationProvider(name="dalle3", kind="image", synchronous=True)
        job = self.orchestrator(dalle3=dalle).start_job(
            owner_id="u1", kind="image", provider="dalle3", parameters={"prompt": "a cat", "n": 2})
        self.assertEqual(job.state, State.COMPLETED)
        self.assertTrue(job.result["ref"].startswith("mock://image/"))
        self.assertEqual(UsageEvent.objects.get().amount, 2)


class ReconcileTest(OrchestratorTestCase):
    def _processing(self, stub):
        orch = self.orchestrator(runway=stub)
        return orch, self.start_video(orch)

    def test_completion_delivered_many_times_commits_once(self):
        orch, job = self._processing(StubRunway())
        outcomes = [orch.reconcile(job.id, signal=DONE)["outcome"] for _ in range(4)]
        self.assertEqual(outcomes, ["completed", "noop", "noop", "noop"])
        self.assertEqual(UsageEvent.objects.filter(job_id=str(job.id)).count(), 1)

    def test_stale_completion_replays_stored_outcome(self):
        orch, job = self._processing(StubRunway())
        first = orch._complete(job, DONE)
        second = orch._complete(job, DONE)  # same in-memory snapshot, as a racing worker would hold
        self.assertEqual(first, second)
        self.assertTrue(first["committed"])
        self.assertEqual(UsageEvent.objects.count(), 1)
        record = IdempotencyRecord.objects.get(key=completion_key(job.id))
        self.assertEqual(record.state, IdempotencyRecord.STATE_COMPLETED)

    def test_failure_signal(self):
        failed = PollResult(status=ProviderStatus.FAILED, failure_detail="NSFW content\n   detected")
        orch, job = self._processing(StubRunway(failed))
        self.assertEqual(orch.reconcile(job.id)["outcome"], "failed")
        job = registry.load(job.id)
        self.assertEqual(job.state, State.FAILED)
        self.assertEqual(job.failure_reason, "Generation failed: NSFW content detected")
        self.assertFalse(UsageEvent.objects.exists())

    def test_transient_poll_error_is_deferred(self):
        orch, job = self._processing(StubRunway(ProviderUnavailable("runway timed out"), DONE))
        self.assertEqual(orch.reconcile(job.id)["outcome"], "deferred")
        self.assertEqual(registry.load(job.id).state, State.PROCESSING)
        self.assertEqual(orch.reconcile(job.id)["outcome"], "completed")

    def test_push_only_provider_is_not_polled(self):
        minimax = MockGenerationProvider(name="minimax", kind="video", push_only=True)
        orch = self.orchestrator(minimax=minimax)
        job = orch.start_job(owner_id="u1", kind="video", provider="minimax", parameters={"prompt": "x", "duration": 5})
        self.assertEqual(orch.reconcile(job.id)["outcome"], "push_only")
        self.assertEqual(orch.reconcile(job.id, signal=DONE)["outcome"], "completed")
        self.assertEqual(UsageEvent.objects.get().amount, 5)

    def test_usage_commit_failure_keeps_job_processing(self):
        orch, job = self._processing(StubRunway())
        with patch("jobs.services.orchestrator.commit_usage", side_effect=DatabaseError("disk full")):
            out = orch.reconcile(job.id, signal=DONE)
        self.assertEqual(out["outcome"], "deferred")
        self.assertEqual(registry.load(job.id).state, State.PROCESSING)
        self.assertFalse(UsageEvent.objects.exists())
        self.assertFalse(IdempotencyRecord.objects.filter(key=completion_key(job.id)).exists())

        self.assertEqual(orch.reconcile(job.id, signal=DONE)["outcome"], "completed")
        self.assertEqual(UsageEvent.objects.count(), 1)

    def test_queued_and_terminal_jobs_are_noops(self):
        queued = registry.create(owner_id="u1", kind="video", provider="runway", parameters={}, quantity=6)
        orch = self.orchestrator(runway=StubRunway())
        self.assertEqual(orch.reconcile(queued.id)["outcome"], "noop")

    def test_summarize_failure(self):
        self.assertEqual(summarize_failure(None), "Generation failed")
        long = summarize_failure("x" * 500)
        self.assertTrue(long.endswith("..."))
        self.assertLessEqual(len(long), len("Generation failed: ") + 200)


class CancelTest(OrchestratorTestCase):
    def test_cancel_then_late_completion(self):
        stub = StubRunway()
        orch = self.orchestrator(runway=stub)
        job = self.start_video(orch)

        job, supported = orch.cancel_job(job.id, "u1")
        self.assertEqual(job.state, State.CANCELLED)
        self.assertTrue(supported)
        self.assertEqual(stub.cancelled, ["rw-123"])

        self.assertEqual(orch.reconcile(job.id, signal=DONE)["outcome"], "noop")
        self.assertEqual(registry.load(job.id).state, State.CANCELLED)
        self.assertFalse(UsageEvent.objects.exists())

    def test_cancel_unsupported_or_failing_provider_still_cancels(self):
        pika = MockGenerationProvider(name="pika", kind="video", supports_cancel=False)
        orch = self.orchestrator(pika=pika)
        job = orch.start_job(owner_id="u1", kind="video", provider="pika", parameters={"prompt": "a", "duration": 2})
        job, supported = orch.cancel_job(job.id, "u1")
        self.assertEqual((job.state, supported), (State.CANCELLED, False))

        stub = StubRunway()
        orch = self.orchestrator(runway=stub)
        job = self.start_video(orch, duration=2)
        with patch.object(stub, "cancel", side_effect=ProviderUnavailable("runway unreachable")):
            job, supported = orch.cancel_job(job.id, "u1")
        self.assertEqual((job.state, supported), (State.CANCELLED, False))

    def test_cancel_refused(self):
        orch = self.orchestrator(runway=StubRunway())
        job = self.start_video(orch)
        orch.reconcile(job.id, signal=DONE)
        with self.assertRaises(InvalidState) as ctx:
            orch.cancel_job(job.id, "u1")
        self.assertEqual(ctx.exception.details["state"], State.COMPLETED)
        self.assertEqual(registry.load(job.id).state, State.COMPLETED)

        queued = registry.create(owner_id="u1", kind="video", provider="runway", parameters={}, quantity=1)
        with self.assertRaises(InvalidState):
            orch.cancel_job(queued.id, "u1")
        with self.assertRaises(NotFound):
            orch.cancel_job(queued.id, "u2")


class StatusAndReaperTest(OrchestratorTestCase):
    def test_refresh_reconciles(self):
        orch = self.orchestrator(runway=StubRunway(DONE))
        job = self.start_video(orch)
        self.assertEqual(orch.get_job_status(job.id, "u1").state, State.PROCESSING)
        self.assertEqual(orch.get_job_status(job.id, "u1", refresh=True).state, State.COMPLETED)
        with self.assertRaises(NotFound):
            orch.get_job_status(job.id, "u2")

    def test_reaper_beats_late_completion(self):
        orch = self.orchestrator(runway=StubRunway())
        job = self.start_video(orch)
        fresh = self.start_video(self.orchestrator(runway=MockGenerationProvider(name="runway", kind="video")),
                                 duration=1, prompt="other")
        GenerationJob.objects.filter(pk=job.id).update(created_at=timezone.now() - timedelta(hours=3))

        self.assertEqual(orch.reap_stale_jobs(max_age_s=3600), 1)
        job = registry.load(job.id)
        self.assertEqual((job.state, job.failure_reason), (State.FAILED, "Generation timed out"))
        self.assertEqual(registry.load(fresh.id).state, State.PROCESSING)

        self.assertEqual(orch.reconcile(job.id, signal=DONE)["outcome"], "noop")
        self.assertFalse(UsageEvent.objects.exists())

    def test_reaper_fails_job_abandoned_before_submit(self):
        # worker died between create and submit: no provider id, still queued
        job = registry.create(owner_id="u1", kind="video", provider="runway",
                              parameters={"prompt": "x", "duration": 6}, quantity=6)
        GenerationJob.objects.filter(pk=job.id).update(created_at=timezone.now() - timedelta(hours=3))

        self.assertEqual(self.orchestrator(runway=StubRunway()).reap_stale_jobs(max_age_s=3600), 1)
        job = registry.load(job.id)
        self.assertEqual((job.state, job.failure_reason), (State.FAILED, "Generation timed out"))
        self.assertIsNone(job.provider_job_id)

        # a submit that returns after the reaper cannot revive the job
        with self.assertRaises(InvalidTransition):
            registry.attach_provider_id(job.id, "rw-late")
        self.assertEqual(registry.load(job.id).state, State.FAILED)
        self.assertFalse(UsageEvent.objects.exists())


@skipIf(connection.vendor == "sqlite", "sqlite shared cache raises table locks instead of blocking")
class ConcurrentCompletionTest(TransactionTestCase):
    """Set TEST_DATABASE_URL to a Postgres database to run these."""

    def setUp(self):
        cache.clear()
        plan = Plan.objects.create(name="Studio", slug="studio", quotas={
            "video_seconds_monthly": 100, "video_max_duration": 30,
        })
        Account.objects.create(owner_id="u1", plan=plan)
        job = registry.create(owner_id="u1", kind="video", provider="runway",
                              parameters={"prompt": "x", "duration": 6}, quantity=6)
        self.job = registry.attach_provider_id(job.id, "rw-123")

    @override_settings(IDEMPOTENCY_WAIT_TIMEOUT_S=5)
    def test_two_workers_reconcile_same_completion(self):
        barrier = threading.Barrier(2)
        results = {}

        def worker(name):
            try:
                barrier.wait(timeout=5)
                results[name] = JobOrchestrator({"runway": StubRunway()}).reconcile(self.job.id, signal=DONE)
            except Exception as e:
                results[name] = e
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(name,)) for name in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=15)

        outcomes = sorted(r["outcome"] for r in results.values())
        self.assertIn(outcomes, (["completed", "completed"], ["completed", "noop"]))
        self.assertEqual(registry.load(self.job.id).state, State.COMPLETED)
        self.assertEqual(UsageEvent.objects.filter(job_id=str(self.job.id)).count(), 1)
        self.assertEqual(quota_status(Account.objects.get(owner_id="u1"), "video").used, 6)
