import json
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, Client

from accounts.models import Account, Plan
from jobs.models import GenerationJob
from providers.services.provider_mock import MockGenerationProvider
from providers.services.registry import PROVIDER_KINDS
from usage.models import UsageEvent

State = GenerationJob.State


def fake_verify(token):
    return {"uid": token}


class JobsApiTest(TestCase):
    def setUp(self):
        cache.clear()
        patcher = patch("core.auth.firebase.verify_id_token", side_effect=fake_verify)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.mock_options = {}
        patcher = patch("jobs.services.orchestrator.get_provider", side_effect=self._provider)
        patcher.start()
        self.addCleanup(patcher.stop)

        plan = Plan.objects.create(name="Studio", slug="studio", per_minute=1000, quotas={
            "image_monthly": 5, "video_seconds_monthly": 10, "voice_minutes_monthly": 60, "video_max_duration": 30,
        })
        Account.objects.create(owner_id="u1", plan=plan)
        self.client = Client()

    def _provider(self, name):
        options = {"complete_after_s": 600, **self.mock_options}
        return MockGenerationProvider(name=name, kind=PROVIDER_KINDS[name], **options)

    def _headers(self, token="u1"):
        return {"HTTP_AUTHORIZATION": f"Bearer {token}"}

    def _start(self, body, token="u1"):
        return self.client.post("/api/v1/jobs/", data=json.dumps(body), content_type="application/json",
                                **self._headers(token))

    def _video(self, prompt="a lighthouse at dusk", duration=6):
        return {"kind": "video", "provider": "runway", "parameters": {"prompt": prompt, "duration": duration}}

    def test_start_job(self):
        resp = self._start(self._video())
        self.assertEqual(resp.status_code, 201, resp.content)
        data = resp.json()
        self.assertEqual((data["state"], data["kind"], data["provider"], data["quantity"]),
                         ("processing", "video", "runway", 6))
        self.assertTrue(data["provider_job_id"].startswith("mock-runway-"))
        self.assertEqual(data["parameters"]["resolution"], "1080p")

    def test_quota_exceeded(self):
        resp = self._start(self._video(duration=12))
        self.assertEqual(resp.status_code, 429, resp.content)
        err = resp.json()["error"]
        self.assertEqual(err["code"], "QUOTA_EXCEEDED")
        self.assertEqual(err["details"], {"reason": err["message"], "used": 0, "limit": 10, "remaining": 10})
        self.assertFalse(GenerationJob.objects.exists())

    def test_new_account_lands_on_free_plan(self):
        resp = self._start(self._video(), token="newcomer")
        self.assertEqual(resp.status_code, 429, resp.content)
        self.assertEqual(Account.objects.get(owner_id="newcomer").plan.slug, "free")

    def test_provider_errors(self):
        self.mock_options = {"submit_error": "rejected"}
        resp = self._start(self._video(prompt="one"))
        self.assertEqual(resp.status_code, 422, resp.content)
        self.assertEqual(resp.json()["error"]["code"], "PROVIDER_REJECTED")

        self.mock_options = {"submit_error": "unavailable"}
        resp = self._start(self._video(prompt="two"))
        self.assertEqual(resp.status_code, 503, resp.content)
        self.assertEqual(resp.json()["error"]["code"], "PROVIDER_UNAVAILABLE")

        self.assertEqual(set(GenerationJob.objects.values_list("state", flat=True)), {State.FAILED})
        self.assertFalse(UsageEvent.objects.exists())

    def test_validation_errors(self):
        resp = self._start({"kind": "video", "provider": "runway", "parameters": {"duration": 6}})
        self.assertEqual(resp.status_code, 400)
        err = resp.json()["error"]
        self.assertEqual(err["code"], "VALIDATION_ERROR")
        self.assertIn("prompt", err["details"]["fields"]["parameters"])

        resp = self._start({"kind": "image", "provider": "runway", "parameters": {"prompt": "x"}})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("provider", resp.json()["error"]["details"]["fields"])

        resp = self._start({"kind": "video", "provider": "sora", "parameters": {"prompt": "x"}})
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post("/api/v1/jobs/", data="{not json", content_type="application/json",
                                **self._headers())
        self.assertEqual(resp.json()["error"]["code"], "INVALID_JSON")

    def test_requires_token(self):
        resp = self.client.get("/api/v1/jobs/")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"]["code"], "UNAUTHORIZED")

    def test_list_is_owner_scoped_and_filterable(self):
        self._start(self._video(prompt="a", duration=2))
        self.mock_options = {"submit_error": "rejected"}
        self._start(self._video(prompt="b", duration=2))
        GenerationJob.objects.create(owner_id="u2", kind="image", provider="dalle3", quantity=1)

        data = self.client.get("/api/v1/jobs/", **self._headers()).json()
        self.assertEqual(data["count"], 2)
        data = self.client.get("/api/v1/jobs/?state=failed", **self._headers()).json()
        self.assertEqual([j["state"] for j in data["results"]], ["failed"])
        data = self.client.get("/api/v1/jobs/?limit=1", **self._headers()).json()
        self.assertEqual(len(data["results"]), 1)
        self.assertIsNotNone(data["next"])

    def test_retrieve_and_refresh(self):
        job_id = self._start(self._video()).json()["id"]

        resp = self.client.get(f"/api/v1/jobs/{job_id}/", **self._headers())
        self.assertEqual(resp.json()["state"], "processing")

        self.mock_options = {"complete_after_s": 0}
        resp = self.client.get(f"/api/v1/jobs/{job_id}/?refresh=1", **self._headers())
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["state"], "completed")
        self.assertEqual(UsageEvent.objects.get().amount, 6)

    def test_foreign_and_unknown_jobs_are_404(self):
        job_id = self._start(self._video()).json()["id"]
        for url in (f"/api/v1/jobs/{job_id}/", "/api/v1/jobs/00000000-0000-0000-0000-000000000000/",
                    "/api/v1/jobs/not-a-uuid/"):
            resp = self.client.get(url, **self._headers("u2"))
            self.assertEqual(resp.status_code, 404, url)
            self.assertEqual(resp.json()["error"]["code"], "NOT_FOUND")
        resp = self.client.post(f"/api/v1/jobs/{job_id}/cancel/", **self._headers("u2"))
        self.assertEqual(resp.status_code, 404)

    def test_cancel(self):
        job_id = self._start(self._video()).json()["id"]
        resp = self.client.post(f"/api/v1/jobs/{job_id}/cancel/", **self._headers())
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual((resp.json()["state"], resp.json()["provider_cancel_supported"]), ("cancelled", True))

        resp = self.client.post(f"/api/v1/jobs/{job_id}/cancel/", **self._headers())
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"]["code"], "INVALID_STATE")
