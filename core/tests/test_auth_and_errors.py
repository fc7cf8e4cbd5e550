from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, Client
from rest_framework.exceptions import ValidationError

from core.exceptions import QuotaExceeded, NotFound, api_exception_handler


def fake_verify(token):
    if token.startswith("token-"):
        return {"uid": token[len("token-"):], "email": "user@example.com"}
    return None


class FirebaseAuthTest(TestCase):
    def setUp(self):
        cache.clear()
        patcher = patch("core.auth.firebase.verify_id_token", side_effect=fake_verify)
        self.verify = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = Client()

    def test_missing_token(self):
        resp = self.client.get("/api/v1/usage/")
        self.assertEqual(resp.status_code, 401, resp.content)
        self.assertEqual(resp.json()["error"]["code"], "UNAUTHORIZED")

    def test_invalid_token(self):
        resp = self.client.get("/api/v1/usage/", HTTP_AUTHORIZATION="Bearer garbage")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"]["code"], "UNAUTHORIZED")

    def test_malformed_header(self):
        resp = self.client.get("/api/v1/usage/", HTTP_AUTHORIZATION="Bearer a b")
        self.assertEqual(resp.status_code, 401)

    def test_valid_token_resolves_owner(self):
        resp = self.client.get("/api/v1/usage/", HTTP_AUTHORIZATION="Bearer token-u1")
        self.assertEqual(resp.status_code, 200, resp.content)
        self.verify.assert_called_once_with("token-u1")
        self.assertEqual(resp.json()["plan"], "free")

    def test_health_is_public(self):
        resp = self.client.get("/health/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")
        self.assertEqual(resp.json()["providers"], "live")


class ExceptionHandlerTest(TestCase):
    def test_domain_error_envelope(self):
        resp = api_exception_handler(QuotaExceeded("Video limit exceeded. 7/10 seconds used this month.", 7, 10, 3), {})
        self.assertEqual(resp.status_code, 429)
        err = resp.data["error"]
        self.assertEqual(err["code"], "QUOTA_EXCEEDED")
        self.assertEqual(err["details"], {"reason": err["message"], "used": 7, "limit": 10, "remaining": 3})

    def test_not_found(self):
        resp = api_exception_handler(NotFound("Job not found"), {})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["error"]["code"], "NOT_FOUND")

    def test_validation_error_fields(self):
        resp = api_exception_handler(ValidationError({"kind": ["This field is required."]}), {})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["error"]["code"], "VALIDATION_ERROR")
        self.assertIn("kind", resp.data["error"]["details"]["fields"])

    def test_unexpected_error_left_to_django(self):
        self.assertIsNone(api_exception_handler(RuntimeError("boom"), {}))
