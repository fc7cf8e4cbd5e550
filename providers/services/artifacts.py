import uuid

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

CONTENT_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}


def save_artifact(*, provider: str, kind: str, content: bytes, ext: str) -> str:
    """Stores generated bytes on default_storage and returns their URL."""
    name = default_storage.save(f"generated/{kind}/{provider}/{uuid.uuid4().hex}.{ext}", ContentFile(content))
    return default_storage.url(name)
