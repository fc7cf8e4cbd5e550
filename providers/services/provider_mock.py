import hashlib
import json
import time

from core.exceptions import ProviderRejected, ProviderUnavailable
from .provider import BaseGenerationProvider, PUSH_ONLY, PollResult, ProviderStatus, SubmitResult


class MockGenerationProvider(BaseGenerationProvider):
    """
    Deterministic fake backend (dev + tests), stateless across instances:
    - provider_job_id encodes the submit time and a hash of the parameters
    - poll reports processing until `complete_after_s` elapsed, then completed
    - result_ref is a stable mock:// reference
    Knobs: submit_error ("rejected" | "unavailable"), poll_error, fail_with,
    push_only, synchronous, supports_cancel.
    """
    def __init__(self, name: str = "mock", kind: str = "", *, complete_after_s: float = 0,
                 submit_error: str | None = None, poll_error: bool = False, fail_with: str | None = None,
                 push_only: bool = False, synchronous: bool = False, supports_cancel: bool = True) -> None:
        self.name = name
        self.kind = kind
        self.complete_after_s = complete_after_s
        self.submit_error = submit_error
        self.poll_error = poll_error
        self.fail_with = fail_with
        self.push_only = push_only
        self.synchronous = synchronous
        self.supports_cancel = supports_cancel
        self.calls: list[tuple] = []

    def submit(self, *, kind, parameters):
        self.calls.append(("submit", kind, parameters))
        if self.submit_error == "rejected":
            raise ProviderRejected(f"{self.name} rejected the request (HTTP 400: invalid prompt)", provider=self.name)
        if self.submit_error == "unavailable":
            raise ProviderUnavailable(f"{self.name} unavailable (HTTP 503)", provider=self.name)

        digest = hashlib.sha256(json.dumps(parameters, sort_keys=True, default=str).encode()).hexdigest()[:12]
        provider_job_id = f"mock-{self.name}-{int(time.time() * 1000)}-{digest}"
        immediate = self._final(provider_job_id) if self.synchronous else None
        return SubmitResult(provider_job_id=provider_job_id, estimated_seconds=int(self.complete_after_s),
                            immediate=immediate)

    def poll(self, provider_job_id):
        self.calls.append(("poll", provider_job_id))
        if self.push_only:
            return PUSH_ONLY
        if self.poll_error:
            raise ProviderUnavailable(f"{self.name} timed out", provider=self.name)
        try:
            submitted_ms = int(provider_job_id.rsplit("-", 2)[-2])
        except (IndexError, ValueError):
            submitted_ms = 0
        elapsed = time.time() - submitted_ms / 1000
        if elapsed < self.complete_after_s:
            percent = int(100 * elapsed / self.complete_after_s)
            return PollResult(status=ProviderStatus.PROCESSING, progress_percent=max(min(percent, 99), 1))
        return self._final(provider_job_id)

    def cancel(self, provider_job_id):
        self.calls.append(("cancel", provider_job_id))
        return self.supports_cancel

    def _final(self, provider_job_id: str) -> PollResult:
        if self.fail_with:
            return PollResult(status=ProviderStatus.FAILED, failure_detail=self.fail_with)
        return PollResult(status=ProviderStatus.COMPLETED, progress_percent=100,
                          result_ref=f"mock://{self.kind or self.name}/{provider_job_id}",
                          metadata={"mock": True})
