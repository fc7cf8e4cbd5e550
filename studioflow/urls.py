from django.conf import settings
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include, re_path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView
from rest_framework.permissions import AllowAny

from .routers import router as api_router
from .settings.base import API_PREFIX, API_VERSION, HEALTH_INFO


def health_view(_request):
    return JsonResponse({
        "status": "ok",
        "providers": "mock" if settings.GENERATION_PROVIDERS_MOCK else "live",
        **HEALTH_INFO(),
    })


def _public(view_cls, **kwargs):
    # docs are readable without a Firebase token
    return view_cls.as_view(permission_classes=[AllowAny], authentication_classes=[], **kwargs)


docs_urlpatterns = [
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("docs/", _public(SpectacularSwaggerView, url_name="schema"), name="swagger-ui"),
    path("redoc/", _public(SpectacularRedocView, url_name="schema"), name="redoc"),
]

api_urlpatterns = [
    path("jobs/", include("jobs.urls")),
    path("usage/", include("usage.urls")),
    path("callbacks/", include("webhooks.urls")),   # provider push, HMAC-signed
    path("billing/", include("billing.urls")),      # Stripe, Stripe-Signature
    path("", include(api_router.urls)),             # operator endpoints
]

urlpatterns = [
    path("health/", health_view, name="health"),
    path("admin/", admin.site.urls),
    path(f"{API_PREFIX}/{API_VERSION}/", include(docs_urlpatterns)),
    path(f"{API_PREFIX}/{API_VERSION}/", include(api_urlpatterns)),
    re_path(r"^$", _public(SpectacularSwaggerView, url_name="schema")),
]
