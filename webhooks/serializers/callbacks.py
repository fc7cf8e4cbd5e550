from rest_framework import serializers

from webhooks.models import ProviderCallback


class CallbackAckSerializer(serializers.Serializer):
    received = serializers.BooleanField()
    delivery_id = serializers.CharField()


class ProviderCallbackOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProviderCallback
        fields = ("id", "provider", "delivery_id", "payload", "outcome", "received_at", "processed_at")
        read_only_fields = fields
