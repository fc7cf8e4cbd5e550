from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, Union


class ProviderStatus:
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (QUEUED, PROCESSING, COMPLETED, FAILED)
    FINAL = (COMPLETED, FAILED)


@dataclass
class PollResult:
    status: str                          # ProviderStatus.*
    progress_percent: int = 0            # 0..100
    result_ref: Optional[str] = None     # artifact URL / storage key (completed only)
    metadata: Dict[str, Any] = field(default_factory=dict)
    failure_detail: Optional[str] = None # provider's own words (failed only)

    def as_signal(self) -> dict:
        """JSON-safe form, passed through Celery and cached."""
        return asdict(self)

    @classmethod
    def from_signal(cls, data: dict) -> "PollResult":
        return cls(
            status=data["status"],
            progress_percent=int(data.get("progress_percent") or 0),
            result_ref=data.get("result_ref"),
            metadata=data.get("metadata") or {},
            failure_detail=data.get("failure_detail"),
        )


@dataclass
class SubmitResult:
    provider_job_id: str
    estimated_seconds: Optional[int] = None
    immediate: Optional[PollResult] = None  # synchronous backends: the final outcome


@dataclass
class ProviderCallbackEvent:
    provider_job_id: str
    result: PollResult
    delivery_id: Optional[str] = None


class _PushOnly:
    def __repr__(self):
        return "PUSH_ONLY"

    def __bool__(self):
        return False


# poll() sentinel: this job is resolved only by inbound callbacks
PUSH_ONLY = _PushOnly()

PollOutcome = Union[PollResult, _PushOnly]


class BaseGenerationProvider:
    """
    Uniform contract over image / video / voice generation backends.
    Vendor specifics (auth headers, payload shapes, status vocabularies)
    stay inside the adapter.
    """
    name: str = ""
    kind: str = ""
    supports_cancel: bool = False

    def submit(self, *, kind: str, parameters: dict) -> SubmitResult:
        raise NotImplementedError

    def poll(self, provider_job_id: str) -> PollOutcome:
        raise NotImplementedError

    def cancel(self, provider_job_id: str) -> bool:
        """True when the backend accepted the cancellation, False when unsupported."""
        return False

    def parse_callback(self, payload: dict) -> ProviderCallbackEvent:
        job_id = payload.get("task_id") or payload.get("job_id") or payload.get("id")
        if not job_id:
            raise ValueError("callback payload has no job id")
        status = map_status(payload.get("status"))
        output = payload.get("output") or payload.get("url") or payload.get("file_url")
        if isinstance(output, list):
            output = output[0] if output else None
        error = payload.get("error") or payload.get("failure") or (payload.get("base_resp") or {}).get("status_msg")
        return ProviderCallbackEvent(
            provider_job_id=str(job_id),
            delivery_id=payload.get("event_id") or payload.get("delivery_id"),
            result=PollResult(
                status=status,
                progress_percent=100 if status in ProviderStatus.FINAL else 50,
                result_ref=output if status == ProviderStatus.COMPLETED else None,
                failure_detail=str(error) if status == ProviderStatus.FAILED and error else None,
            ),
        )


# vendor vocabularies -> ProviderStatus
_STATUS_MAP = {
    "completed": ProviderStatus.COMPLETED,
    "complete": ProviderStatus.COMPLETED,
    "succeeded": ProviderStatus.COMPLETED,
    "success": ProviderStatus.COMPLETED,
    "finished": ProviderStatus.COMPLETED,
    "failed": ProviderStatus.FAILED,
    "fail": ProviderStatus.FAILED,
    "error": ProviderStatus.FAILED,
    "cancelled": ProviderStatus.FAILED,
    "canceled": ProviderStatus.FAILED,
    "processing": ProviderStatus.PROCESSING,
    "running": ProviderStatus.PROCESSING,
    "in_progress": ProviderStatus.PROCESSING,
    "generating": ProviderStatus.PROCESSING,
    "queued": ProviderStatus.QUEUED,
    "queueing": ProviderStatus.QUEUED,
    "pending": ProviderStatus.QUEUED,
    "preparing": ProviderStatus.QUEUED,
    "throttled": ProviderStatus.QUEUED,
}


def map_status(raw) -> str:
    return _STATUS_MAP.get(str(raw or "").strip().lower(), ProviderStatus.PROCESSING)


def default_progress(status: str) -> int:
    return {ProviderStatus.COMPLETED: 100, ProviderStatus.PROCESSING: 50,
            ProviderStatus.QUEUED: 10}.get(status, 0)
