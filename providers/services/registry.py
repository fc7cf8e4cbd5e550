from django.conf import settings

from core.exceptions import ProviderRejected
from .image import Dalle3Provider, StabilityProvider
from .provider import BaseGenerationProvider
from .provider_mock import MockGenerationProvider
from .video import MiniMaxProvider, PikaProvider, RunwayProvider
from .voice import ElevenLabsProvider, GoogleTTSProvider, OpenAITTSProvider

ADAPTERS = {
    cls.name: cls
    for cls in (
        RunwayProvider, PikaProvider, MiniMaxProvider,
        Dalle3Provider, StabilityProvider,
        ElevenLabsProvider, GoogleTTSProvider, OpenAITTSProvider,
    )
}

# provider slug -> job kind it serves
PROVIDER_KINDS = {name: cls.kind for name, cls in ADAPTERS.items()}

PROVIDER_LABELS = {
    "runway": "Runway",
    "pika": "Pika",
    "minimax": "MiniMax",
    "dalle3": "DALL-E 3",
    "stability": "Stability AI",
    "elevenlabs": "ElevenLabs",
    "google_tts": "Google TTS",
    "openai_tts": "OpenAI TTS",
}


def get_provider(name: str) -> BaseGenerationProvider:
    cls = ADAPTERS.get(name)
    if cls is None:
        raise ProviderRejected(f"Unknown provider '{name}'", provider=name)
    if settings.GENERATION_PROVIDERS_MOCK:
        return MockGenerationProvider(name=name, kind=cls.kind, complete_after_s=5,
                                      supports_cancel=cls.supports_cancel)
    return cls()


def providers_for_kind(kind: str) -> list[str]:
    return [name for name, k in PROVIDER_KINDS.items() if k == kind]
