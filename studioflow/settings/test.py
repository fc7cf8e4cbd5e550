from .base import *

DEBUG = False
SECRET_KEY = "test-secret-key"

if env("TEST_DATABASE_URL"):
    # the threaded completion race needs a server database; sqlite skips it
    DATABASES = {"default": parse_database_url(env("TEST_DATABASE_URL"))}
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": ":memory:",
        }
    }

CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}}

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.InMemoryStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

GENERATION_PROVIDERS_MOCK = False
PROVIDER_CALLBACK_SECRETS = {"runway": "cb_secret_runway", "minimax": "cb_secret_minimax"}
STRIPE_WEBHOOK_SECRET = "whsec_test"
STRIPE_PRICE_PLANS = {"price_pro_monthly": "pro"}

IDEMPOTENCY_WAIT_TIMEOUT_S = 0.5
IDEMPOTENCY_WAIT_INTERVAL_S = 0.01

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

LOGGING["handlers"]["console"]["formatter"] = "simple"
LOG_LEVEL = "WARNING"
LOGGING["root"]["level"] = "WARNING"
