from .base import *

DEBUG = True

ALLOWED_HOSTS = ["127.0.0.1", "localhost"]

# Insecure cookies in dev
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

# Browsable API in dev
REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = (
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
)

# Local cache when Redis is not running
if env("CACHE_URL", "") == "locmem":
    CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}}

# Deterministic mock adapters instead of real vendor calls
GENERATION_PROVIDERS_MOCK = env("GENERATION_PROVIDERS_MOCK", "1") == "1"

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"
