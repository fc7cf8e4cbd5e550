import logging
import uuid
from typing import Optional

import httpx
from django.conf import settings
from django.core.cache import cache

from core.exceptions import ProviderRejected, ProviderUnavailable
from .provider import BaseGenerationProvider, PollResult, ProviderStatus, SubmitResult

logger = logging.getLogger(__name__)

# retryable on the vendor side: auth/config, timeouts, rate limits, outages
_UNAVAILABLE_CODES = {401, 403, 408, 429}


def summarize_error(resp: httpx.Response, limit: int = 200) -> str:
    """Short, single-line description of a vendor error response."""
    detail = ""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error") or body.get("message") or body.get("detail") or body.get("errors")
        if isinstance(err, dict):
            err = err.get("message") or err.get("code")
        if isinstance(err, list):
            err = "; ".join(str(e) for e in err[:3])
        detail = str(err or "")
    if not detail:
        detail = (resp.text or "").strip()
    detail = " ".join(detail.split())[:limit]
    return f"HTTP {resp.status_code}" + (f": {detail}" if detail else "")


class HttpGenerationProvider(BaseGenerationProvider):
    """httpx plumbing + vendor error mapping shared by all real adapters."""
    base_url: str = ""

    def __init__(self, api_key: Optional[str] = None, *, client: Optional[httpx.Client] = None,
                 timeout: Optional[float] = None) -> None:
        self.api_key = api_key if api_key is not None else settings.PROVIDER_API_KEYS.get(self.name, "")
        self.timeout = timeout or settings.PROVIDER_HTTP_TIMEOUT_S
        self._client = client

    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if not self.api_key:
            raise ProviderUnavailable(f"{self.name} API key not configured", provider=self.name)

        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = {**self.auth_headers(), **kwargs.pop("headers", {})}
        try:
            if self._client is not None:
                resp = self._client.request(method, url, headers=headers, **kwargs)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(f"{self.name} timed out", {"error": e.__class__.__name__}, provider=self.name)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"{self.name} unreachable", {"error": e.__class__.__name__}, provider=self.name)

        if resp.status_code >= 500 or resp.status_code in _UNAVAILABLE_CODES:
            summary = summarize_error(resp)
            logger.warning("%s %s %s -> %s", self.name, method, path, summary)
            raise ProviderUnavailable(f"{self.name} unavailable ({summary})", {"status_code": resp.status_code},
                                      provider=self.name)
        if resp.status_code >= 400:
            summary = summarize_error(resp)
            logger.info("%s %s %s rejected -> %s", self.name, method, path, summary)
            raise ProviderRejected(f"{self.name} rejected the request ({summary})", {"status_code": resp.status_code},
                                   provider=self.name)
        return resp

    def request_json(self, method: str, path: str, **kwargs) -> dict:
        resp = self.request(method, path, **kwargs)
        try:
            data = resp.json()
        except ValueError:
            raise ProviderRejected(f"{self.name} returned a malformed response", provider=self.name)
        if not isinstance(data, dict):
            raise ProviderRejected(f"{self.name} returned an unexpected payload", provider=self.name)
        return data

    def require(self, data: dict, *keys: str) -> str:
        """First present key of a vendor response, else ProviderRejected."""
        for key in keys:
            if data.get(key):
                return str(data[key])
        raise ProviderRejected(f"{self.name} response missing {'/'.join(keys)}", provider=self.name)


class SynchronousProvider(HttpGenerationProvider):
    """
    Backends that return the artifact in the submit call. The outcome is
    reported as an immediate completion and cached so poll() can replay it.
    """

    def generate(self, *, kind: str, parameters: dict) -> PollResult:
        raise NotImplementedError

    def submit(self, *, kind, parameters):
        result = self.generate(kind=kind, parameters=parameters)
        provider_job_id = f"{self.name}-{uuid.uuid4().hex}"
        cache.set(self._cache_key(provider_job_id), result.as_signal(), timeout=settings.PROVIDER_RESULT_CACHE_TTL_S)
        return SubmitResult(provider_job_id=provider_job_id, estimated_seconds=0, immediate=result)

    def poll(self, provider_job_id):
        cached = cache.get(self._cache_key(provider_job_id))
        if cached is None:
            return PollResult(status=ProviderStatus.FAILED, failure_detail="generated result no longer available")
        return PollResult.from_signal(cached)

    def _cache_key(self, provider_job_id: str) -> str:
        return f"provider-result:{self.name}:{provider_job_id}"
