from rest_framework import serializers

from jobs.models import GenerationJob
from jobs.services.billing_rules import IMAGE_MAX_COUNT, VIDEO_DEFAULT_DURATION, VIDEO_MAX_DURATION, VOICE_MAX_CHARS
from providers.services.registry import PROVIDER_KINDS


class VideoParametersSerializer(serializers.Serializer):
    prompt = serializers.CharField(max_length=2000)
    duration = serializers.IntegerField(min_value=1, max_value=VIDEO_MAX_DURATION, default=VIDEO_DEFAULT_DURATION)
    resolution = serializers.ChoiceField(choices=["720p", "1080p", "4k", "vertical", "square"], default="1080p")
    image_url = serializers.URLField(required=False)
    model = serializers.CharField(max_length=64, required=False)


class ImageParametersSerializer(serializers.Serializer):
    prompt = serializers.CharField(max_length=4000)
    n = serializers.IntegerField(min_value=1, max_value=IMAGE_MAX_COUNT, default=1)
    size = serializers.ChoiceField(choices=["1024x1024", "1792x1024", "1024x1792"], default="1024x1024")
    quality = serializers.ChoiceField(choices=["standard", "hd"], default="standard")
    style = serializers.ChoiceField(choices=["natural", "artistic", "photorealistic"], required=False)
    negative_prompt = serializers.CharField(max_length=1000, required=False)


class VoiceParametersSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=VOICE_MAX_CHARS)
    voice_id = serializers.CharField(max_length=128, required=False)
    language = serializers.CharField(max_length=16, default="en-US")
    speed = serializers.FloatField(min_value=0.25, max_value=4.0, required=False)


PARAMETER_SERIALIZERS = {
    "video": VideoParametersSerializer,
    "image": ImageParametersSerializer,
    "voice": VoiceParametersSerializer,
}


class StartJobSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=GenerationJob.Kind.choices)
    provider = serializers.ChoiceField(choices=sorted(PROVIDER_KINDS))
    parameters = serializers.DictField()

    def validate(self, attrs):
        if PROVIDER_KINDS[attrs["provider"]] != attrs["kind"]:
            raise serializers.ValidationError({"provider": f"'{attrs['provider']}' does not generate {attrs['kind']}"})
        params = PARAMETER_SERIALIZERS[attrs["kind"]](data=attrs["parameters"])
        if not params.is_valid():
            raise serializers.ValidationError({"parameters": params.errors})
        attrs["parameters"] = dict(params.validated_data)
        return attrs


class JobOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = GenerationJob
        fields = ("id", "kind", "provider", "state", "parameters", "provider_job_id", "progress_percent",
                  "result", "failure_reason", "quantity", "estimated_seconds",
                  "created_at", "updated_at", "finished_at")
        read_only_fields = fields


class CancelOutSerializer(JobOutSerializer):
    provider_cancel_supported = serializers.BooleanField()

    class Meta(JobOutSerializer.Meta):
        fields = JobOutSerializer.Meta.fields + ("provider_cancel_supported",)
        read_only_fields = fields
