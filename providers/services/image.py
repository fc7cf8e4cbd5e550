"""Synchronous image backends."""
from core.exceptions import ProviderRejected
from .artifacts import CONTENT_TYPES, save_artifact
from .http import SynchronousProvider
from .provider import PollResult, ProviderStatus

DALLE_SIZES = ("1024x1024", "1792x1024", "1024x1792")
STABILITY_ASPECT = {"1024x1024": "1:1", "1792x1024": "16:9", "1024x1792": "9:16"}
STABILITY_STYLES = {"artistic": "digital-art", "photorealistic": "photographic"}


class Dalle3Provider(SynchronousProvider):
    name = "dalle3"
    kind = "image"
    base_url = "https://api.openai.com/v1"

    def generate(self, *, kind, parameters):
        size = parameters.get("size") if parameters.get("size") in DALLE_SIZES else "1024x1024"
        urls, revised = [], None
        # dall-e-3 only accepts n=1 per request
        for _ in range(parameters.get("n", 1)):
            data = self.request_json("POST", "/images/generations", json={
                "model": "dall-e-3",
                "prompt": parameters["prompt"],
                "n": 1,
                "size": size,
                "quality": parameters.get("quality", "standard"),
                "response_format": "url",
            })
            items = data.get("data") or []
            if not items or not items[0].get("url"):
                raise ProviderRejected(f"{self.name} response missing image url", provider=self.name)
            urls.append(items[0]["url"])
            revised = revised or items[0].get("revised_prompt")
        metadata = {"images": urls, "size": size}
        if revised:
            metadata["revised_prompt"] = revised
        return PollResult(status=ProviderStatus.COMPLETED, progress_percent=100, result_ref=urls[0], metadata=metadata)


class StabilityProvider(SynchronousProvider):
    name = "stability"
    kind = "image"
    base_url = "https://api.stability.ai/v2beta"

    def generate(self, *, kind, parameters):
        size = parameters.get("size") or "1024x1024"
        form = {
            "prompt": parameters["prompt"],
            "aspect_ratio": STABILITY_ASPECT.get(size, "1:1"),
            "output_format": "png",
        }
        if parameters.get("style") in STABILITY_STYLES:
            form["style_preset"] = STABILITY_STYLES[parameters["style"]]
        if parameters.get("negative_prompt"):
            form["negative_prompt"] = parameters["negative_prompt"]

        urls = []
        for _ in range(parameters.get("n", 1)):
            # multipart body is required even without files
            resp = self.request("POST", "/stable-image/generate/core", data=form,
                                files={"none": ("", b"")}, headers={"Accept": "image/*"})
            urls.append(save_artifact(provider=self.name, kind="image", content=resp.content, ext="png"))
        return PollResult(status=ProviderStatus.COMPLETED, progress_percent=100, result_ref=urls[0],
                          metadata={"images": urls, "content_type": CONTENT_TYPES["png"]})
