"""Serializers for the notifications API."""

from rest_framework import serializers

from notifications.models import DeviceToken, DeviceType


class DeviceTokenSerializer(serializers.ModelSerializer):
    deviceType = serializers.CharField(source="device_type", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = DeviceToken
        fields = ["id", "token", "deviceType", "createdAt"]
        read_only_fields = fields


class DeviceTokenRegisterSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=255)
    deviceType = serializers.ChoiceField(choices=DeviceType.choices, default=DeviceType.WEB)


class DeviceTokenRemoveSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=255)
