"""Synchronous text-to-speech backends. Audio bytes go to default_storage."""
import base64
import binascii

from core.exceptions import ProviderRejected
from .artifacts import CONTENT_TYPES, save_artifact
from .http import SynchronousProvider
from .provider import PollResult, ProviderStatus

WORDS_PER_MINUTE = 150


def _audio_result(provider: str, content: bytes, text: str, ext: str = "mp3") -> PollResult:
    url = save_artifact(provider=provider, kind="voice", content=content, ext=ext)
    words = len(text.split())
    return PollResult(
        status=ProviderStatus.COMPLETED,
        progress_percent=100,
        result_ref=url,
        metadata={
            "content_type": CONTENT_TYPES[ext],
            "bytes": len(content),
            "estimated_duration_s": round(words / WORDS_PER_MINUTE * 60, 1),
        },
    )


class ElevenLabsProvider(SynchronousProvider):
    name = "elevenlabs"
    kind = "voice"
    base_url = "https://api.elevenlabs.io/v1"
    default_voice = "21m00Tcm4TlvDq8ikWAM"
    model_id = "eleven_multilingual_v2"

    def auth_headers(self):
        return {"xi-api-key": self.api_key}

    def generate(self, *, kind, parameters):
        voice_id = parameters.get("voice_id") or self.default_voice
        body = {"text": parameters["text"], "model_id": self.model_id}
        if parameters.get("speed"):
            body["voice_settings"] = {"speed": parameters["speed"]}
        resp = self.request("POST", f"/text-to-speech/{voice_id}", json=body, headers={"Accept": "audio/mpeg"})
        return _audio_result(self.name, resp.content, parameters["text"])


class GoogleTTSProvider(SynchronousProvider):
    name = "google_tts"
    kind = "voice"
    base_url = "https://texttospeech.googleapis.com/v1"
    default_voice = "en-US-Neural2-C"

    def auth_headers(self):
        return {"X-Goog-Api-Key": self.api_key}

    def generate(self, *, kind, parameters):
        language = parameters.get("language") or "en-US"
        data = self.request_json("POST", "/text:synthesize", json={
            "input": {"text": parameters["text"]},
            "voice": {"languageCode": language, "name": parameters.get("voice_id") or self.default_voice},
            "audioConfig": {"audioEncoding": "MP3", "speakingRate": parameters.get("speed") or 1.0},
        })
        try:
            content = base64.b64decode(self.require(data, "audioContent"), validate=True)
        except binascii.Error:
            raise ProviderRejected(f"{self.name} returned undecodable audio", provider=self.name)
        return _audio_result(self.name, content, parameters["text"])


class OpenAITTSProvider(SynchronousProvider):
    name = "openai_tts"
    kind = "voice"
    base_url = "https://api.openai.com/v1"
    voices = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")

    def generate(self, *, kind, parameters):
        voice = parameters.get("voice_id") if parameters.get("voice_id") in self.voices else "alloy"
        resp = self.request("POST", "/audio/speech", json={
            "model": "tts-1",
            "input": parameters["text"],
            "voice": voice,
            "response_format": "mp3",
            "speed": parameters.get("speed") or 1.0,
        })
        return _audio_result(self.name, resp.content, parameters["text"])
