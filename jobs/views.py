from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiExample, OpenApiParameter, OpenApiResponse
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.pagination import LimitOffsetPagination
from rest_framework.response import Response

from .serializers.jobs import JobOutSerializer, StartJobSerializer, CancelOutSerializer
from .services import registry
from .services.orchestrator import JobOrchestrator

TRUTHY = ("1", "true", "yes")


class JobPagination(LimitOffsetPagination):
    default_limit = 50
    max_limit = 200


@extend_schema_view(
    list=extend_schema(tags=["Jobs"], description="Caller's jobs, newest first."),
    retrieve=extend_schema(
        tags=["Jobs"],
        parameters=[OpenApiParameter("refresh", bool, description="Reconcile with the provider before answering")],
        responses={200: JobOutSerializer, 404: OpenApiResponse(description="NOT_FOUND")},
    ),
)
class JobViewSet(viewsets.GenericViewSet, mixins.ListModelMixin):
    """
    POST /jobs/             -> StartJob (201)
    GET  /jobs/{id}/        -> status (+ ?refresh=1)
    POST /jobs/{id}/cancel/ -> CancelJob
    """
    serializer_class = JobOutSerializer
    pagination_class = JobPagination
    filterset_fields = ("kind", "state", "provider")
    ordering_fields = ("created_at", "updated_at")
    lookup_value_regex = "[^/]+"

    def get_queryset(self):
        return registry.list_for_owner(self.request.user.owner_id)

    def get_orchestrator(self) -> JobOrchestrator:
        return JobOrchestrator()

    @extend_schema(
        tags=["Jobs"],
        request=StartJobSerializer,
        responses={
            201: JobOutSerializer,
            400: OpenApiResponse(description="VALIDATION_ERROR / INVALID_PARAMETERS"),
            422: OpenApiResponse(description="PROVIDER_REJECTED"),
            429: OpenApiResponse(description="QUOTA_EXCEEDED / RATE_LIMITED"),
            503: OpenApiResponse(description="PROVIDER_UNAVAILABLE"),
        },
        examples=[OpenApiExample("Video", value={
            "kind": "video", "provider": "runway",
            "parameters": {"prompt": "a lighthouse at dusk, slow dolly in", "duration": 6, "resolution": "1080p"},
        }, request_only=True)],
    )
    def create(self, request):
        ser = StartJobSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        job = self.get_orchestrator().start_job(owner_id=request.user.owner_id, **ser.validated_data)
        return Response(JobOutSerializer(job).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        refresh = request.query_params.get("refresh", "").lower() in TRUTHY
        job = self.get_orchestrator().get_job_status(pk, request.user.owner_id, refresh=refresh)
        return Response(JobOutSerializer(job).data)

    @extend_schema(
        tags=["Jobs"],
        request=None,
        responses={200: CancelOutSerializer, 404: OpenApiResponse(description="NOT_FOUND"),
                   409: OpenApiResponse(description="INVALID_STATE")},
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        job, supported = self.get_orchestrator().cancel_job(pk, request.user.owner_id)
        return Response({**JobOutSerializer(job).data, "provider_cancel_supported": supported})
