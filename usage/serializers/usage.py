from rest_framework import serializers

from usage.models import UsageEvent


class UsageEventOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = UsageEvent
        fields = ("id", "owner_id", "kind", "job_id", "provider", "unit_price", "amount", "created_at")
        read_only_fields = fields


class KindUsageSerializer(serializers.Serializer):
    used = serializers.IntegerField()
    limit = serializers.IntegerField(allow_null=True)
    remaining = serializers.IntegerField(allow_null=True)


class OwnUsageOutSerializer(serializers.Serializer):
    plan = serializers.CharField()
    status = serializers.CharField()
    period = serializers.CharField()
    image = KindUsageSerializer()
    video = KindUsageSerializer()
    voice = KindUsageSerializer()
