from .base import *

DEBUG = False

# Must be configured explicitly in prod
ALLOWED_HOSTS = [h for h in ALLOWED_HOSTS if h]

# Secure cookies
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_SSL_REDIRECT = True

# HSTS
SECURE_HSTS_SECONDS = 31536000
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

SECURE_REFERRER_POLICY = "same-origin"
SECURE_CONTENT_TYPE_NOSNIFF = True

GENERATION_PROVIDERS_MOCK = False

# JSON logging forced
LOGGING["handlers"]["console"]["formatter"] = "json"
