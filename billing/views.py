import json
import logging

import stripe
from django.conf import settings
from drf_spectacular.utils import extend_schema, OpenApiResponse
from rest_framework.exceptions import ParseError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import InvalidSignature
from idempotency.services.store import run_once
from .services.events import apply_stripe_event

logger = logging.getLogger(__name__)


@extend_schema(
    tags=["Billing"],
    request=None,
    responses={200: OpenApiResponse(description="Event applied or replayed"),
               400: OpenApiResponse(description="INVALID_JSON"),
               401: OpenApiResponse(description="INVALID_SIGNATURE")},
)
class StripeWebhookView(APIView):
    """
    POST /billing/stripe/webhook/
    Auth: Stripe-Signature. Each event id is applied once.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = []

    def post(self, request):
        payload = request.body
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
        if not settings.STRIPE_WEBHOOK_SECRET:
            raise InvalidSignature("Stripe webhook secret not configured")
        try:
            stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
        except ValueError:
            raise ParseError("Invalid Stripe payload")
        except stripe.SignatureVerificationError:
            raise InvalidSignature("Invalid Stripe signature")

        event = json.loads(payload)
        outcome = run_once(f"stripe:{event['id']}", settings.IDEMPOTENCY_DEFAULT_TTL_S,
                           lambda: apply_stripe_event(event))
        logger.info("stripe event %s type=%s applied=%s", event["id"], event.get("type"), outcome.get("applied"))
        return Response({"received": True, **outcome})
