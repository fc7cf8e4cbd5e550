"""Asynchronous video backends: submit returns a task id, progress is polled (or pushed)."""
import logging

from django.conf import settings

from .http import HttpGenerationProvider
from .provider import PUSH_ONLY, PollResult, ProviderStatus, SubmitResult, map_status, default_progress

logger = logging.getLogger(__name__)

ASPECT_RATIOS = {"720p": "16:9", "1080p": "16:9", "4k": "16:9", "vertical": "9:16", "square": "1:1"}


def _aspect_ratio(resolution: str) -> str:
    return ASPECT_RATIOS.get(resolution or "", "16:9")


def _failure(status: str, *candidates):
    if status != ProviderStatus.FAILED:
        return None
    for c in candidates:
        if c:
            return str(c)
    return None


def _first_output(data: dict):
    out = data.get("output") or data.get("video_url") or data.get("url") or data.get("file_url")
    if isinstance(out, list):
        return out[0] if out else None
    return out


class RunwayProvider(HttpGenerationProvider):
    name = "runway"
    kind = "video"
    supports_cancel = True
    base_url = "https://api.runwayml.com/v1"
    estimated_seconds = 120

    def submit(self, *, kind, parameters):
        payload = {
            "text_prompt": parameters["prompt"],
            "ratio": _aspect_ratio(parameters.get("resolution")),
            "duration": parameters["duration"],
            "watermark": False,
        }
        if parameters.get("image_url"):
            payload["image_url"] = parameters["image_url"]
        data = self.request_json("POST", "/image-to-video", json=payload)
        return SubmitResult(provider_job_id=self.require(data, "id"), estimated_seconds=self.estimated_seconds)

    def poll(self, provider_job_id):
        data = self.request_json("GET", f"/image-to-video/{provider_job_id}")
        status = map_status(data.get("status"))
        progress = data.get("progress")
        if isinstance(progress, (int, float)) and 0 <= progress <= 1:
            percent = int(progress * 100)
        else:
            percent = default_progress(status)
        return PollResult(
            status=status,
            progress_percent=percent,
            result_ref=_first_output(data) if status == ProviderStatus.COMPLETED else None,
            failure_detail=_failure(status, data.get("failure"), data.get("error")),
        )

    def cancel(self, provider_job_id):
        self.request("DELETE", f"/tasks/{provider_job_id}")
        return True


class PikaProvider(HttpGenerationProvider):
    name = "pika"
    kind = "video"
    base_url = "https://api.pika.art/v1"
    estimated_seconds = 60

    def submit(self, *, kind, parameters):
        data = self.request_json("POST", "/generate", json={
            "prompt": parameters["prompt"],
            "aspect_ratio": _aspect_ratio(parameters.get("resolution")),
            "duration": parameters["duration"],
        })
        return SubmitResult(provider_job_id=self.require(data, "job_id", "id"), estimated_seconds=self.estimated_seconds)

    def poll(self, provider_job_id):
        data = self.request_json("GET", f"/status/{provider_job_id}")
        status = map_status(data.get("status"))
        return PollResult(
            status=status,
            progress_percent=default_progress(status),
            result_ref=_first_output(data) if status == ProviderStatus.COMPLETED else None,
            failure_detail=_failure(status, data.get("error")),
        )


class MiniMaxProvider(HttpGenerationProvider):
    """
    MiniMax Hailuo. With MINIMAX_CALLBACK_URL set the vendor pushes the final
    status to /callbacks/minimax/ and the job is never polled.
    """
    name = "minimax"
    kind = "video"
    base_url = "https://api.minimax.chat/v1"
    default_model = "MiniMax-Hailuo-2.3"
    estimated_seconds = 120

    def __init__(self, *args, callback_url=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.callback_url = settings.MINIMAX_CALLBACK_URL if callback_url is None else callback_url

    def submit(self, *, kind, parameters):
        payload = {
            "model": parameters.get("model") or self.default_model,
            "prompt": parameters["prompt"],
            "resolution": parameters.get("resolution", "1080p"),
            "duration": parameters["duration"],
        }
        if self.callback_url:
            payload["callback_url"] = self.callback_url
        data = self.request_json("POST", "/text_to_video", json=payload)
        return SubmitResult(provider_job_id=self.require(data, "task_id"), estimated_seconds=self.estimated_seconds)

    def poll(self, provider_job_id):
        if self.callback_url:
            return PUSH_ONLY
        data = self.request_json("GET", f"/video_status/{provider_job_id}")
        status = map_status(data.get("status"))
        base_resp = data.get("base_resp") or {}
        return PollResult(
            status=status,
            progress_percent=default_progress(status),
            result_ref=_first_output(data) if status == ProviderStatus.COMPLETED else None,
            failure_detail=_failure(status, data.get("error"), base_resp.get("status_msg")),
        )
