import hashlib
import json
import logging

from drf_spectacular.utils import extend_schema, OpenApiResponse
from rest_framework import status, viewsets, mixins
from rest_framework.exceptions import ParseError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import NotFound
from core.permissions.owner_scoped import IsStaffToken
from providers.services.registry import PROVIDER_KINDS
from .models import ProviderCallback
from .serializers.callbacks import CallbackAckSerializer, ProviderCallbackOutSerializer
from .services.signer import META_SIG, META_TS, verify_signature
from .tasks import process_provider_callback

logger = logging.getLogger(__name__)

DELIVERY_ID_KEYS = ("event_id", "delivery_id", "webhook_id")


def _delivery_id(payload: dict, body: bytes) -> str:
    for key in DELIVERY_ID_KEYS:
        if payload.get(key):
            return str(payload[key])[:128]
    return hashlib.sha256(body).hexdigest()


@extend_schema(
    tags=["Callbacks"],
    request=None,
    responses={
        202: OpenApiResponse(CallbackAckSerializer),
        401: OpenApiResponse(description="INVALID_SIGNATURE"),
        404: OpenApiResponse(description="Unknown provider"),
    },
)
class ProviderCallbackView(APIView):
    """
    POST /callbacks/{provider}/
    Auth: X-Callback-Timestamp + X-Callback-Signature (per-provider secret)
    Journaled, then processed asynchronously.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = []

    def post(self, request, provider: str):
        if provider not in PROVIDER_KINDS:
            raise NotFound("Unknown provider", {"provider": provider})

        body = request.body
        verify_signature(provider, body, request.META.get(META_TS), request.META.get(META_SIG))

        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            raise ParseError("Callback body is not valid JSON")
        if not isinstance(payload, dict):
            raise ParseError("Callback body must be a JSON object")

        callback = ProviderCallback.objects.create(
            provider=provider,
            delivery_id=_delivery_id(payload, body),
            payload=payload,
            headers={"timestamp": request.META.get(META_TS), "user_agent": request.META.get("HTTP_USER_AGENT", "")},
        )
        logger.info("%s callback received delivery=%s", provider, callback.delivery_id)
        process_provider_callback.delay(callback.id)
        return Response({"received": True, "delivery_id": callback.delivery_id}, status=status.HTTP_202_ACCEPTED)


class ProviderCallbackAdminViewSet(viewsets.GenericViewSet, mixins.ListModelMixin, mixins.RetrieveModelMixin):
    """
    Operators: callback journal.
    """
    permission_classes = [IsStaffToken]
    serializer_class = ProviderCallbackOutSerializer
    filter_backends = []

    def get_queryset(self):
        qs = ProviderCallback.objects.order_by("-received_at")
        provider = self.request.query_params.get("provider")
        delivery_id = self.request.query_params.get("delivery_id")
        processed = self.request.query_params.get("processed")
        if provider:
            qs = qs.filter(provider=provider)
        if delivery_id:
            qs = qs.filter(delivery_id=delivery_id)
        if processed is not None:
            qs = qs.filter(processed_at__isnull=(processed.lower() != "true"))
        return qs
