from django.db.models import Sum
from django.utils.timezone import now
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiResponse
from rest_framework import viewsets, mixins
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.services.subscriptions import get_or_create_account
from core.permissions.owner_scoped import IsStaffToken
from .models import UsageEvent
from .serializers.usage import UsageEventOutSerializer, OwnUsageOutSerializer
from .services.metering import KINDS, get_usage


@extend_schema(tags=["Usage"], responses={200: OpenApiResponse(OwnUsageOutSerializer)})
class OwnUsageView(APIView):
    """
    GET /usage/ -> current month usage and limits per kind for the caller.
    """
    def get(self, request):
        account = get_or_create_account(request.user.owner_id)
        n = now()
        data = {"plan": account.plan.slug, "status": account.status, "period": f"{n.year}-{n.month:02d}"}
        for kind in KINDS:
            u = get_usage(account.owner_id, kind)
            remaining = None if u["limit"] is None else max(u["limit"] - u["used"], 0)
            data[kind] = {**u, "remaining": remaining}
        return Response(OwnUsageOutSerializer(data).data)


@extend_schema(
    tags=["Admin"],
    parameters=[
        OpenApiParameter("owner_id", str), OpenApiParameter("kind", str),
        OpenApiParameter("from", str), OpenApiParameter("to", str),
    ],
)
class UsageEventAdminViewSet(viewsets.GenericViewSet, mixins.ListModelMixin):
    """
    Operators: read committed usage events (filterable via query params).
    """
    permission_classes = [IsStaffToken]
    serializer_class = UsageEventOutSerializer
    filter_backends = []

    def get_queryset(self):
        qs = UsageEvent.objects.order_by("-created_at")
        owner_id = self.request.query_params.get("owner_id")
        kind = self.request.query_params.get("kind")
        date_from = self.request.query_params.get("from")
        date_to = self.request.query_params.get("to")
        if owner_id:
            qs = qs.filter(owner_id=owner_id)
        if kind:
            qs = qs.filter(kind=kind)
        if date_from:
            qs = qs.filter(created_at__gte=date_from)
        if date_to:
            qs = qs.filter(created_at__lt=date_to)
        return qs

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        agg = self.get_queryset().order_by().values("kind").annotate(total=Sum("amount")).order_by("kind")
        response.data = {"results": response.data, "summary": list(agg)}
        return response
