"""
REST API views for notifications.

Endpoints:
    POST   /api/v1/notifications/device-tokens/   Register a push token
    DELETE /api/v1/notifications/device-tokens/   Remove a push token
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from notifications.serializers import (
    DeviceTokenRegisterSerializer,
    DeviceTokenRemoveSerializer,
    DeviceTokenSerializer,
)
from notifications.services import DeviceTokenService


class DeviceTokenView(APIView):
    """Manage the current user's push tokens."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="register_device_token",
        summary="Register device token",
        description=(
            "Register a push notification token for the current user. A token "
            "already registered by another user is moved to the current user."
        ),
        request=DeviceTokenRegisterSerializer,
        responses={
            201: OpenApiResponse(response=DeviceTokenSerializer, description="Token registered"),
            400: OpenApiResponse(description="Invalid token or device type"),
        },
        tags=["Notifications"],
    )
    def post(self, request):
        serializer = DeviceTokenRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DeviceTokenService.register(
            request.user,
            serializer.validated_data["token"],
            serializer.validated_data["deviceType"],
        )
        if not result.success:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(DeviceTokenSerializer(result.data).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="remove_device_token",
        summary="Remove device token",
        request=DeviceTokenRemoveSerializer,
        responses={204: OpenApiResponse(description="Token removed")},
        tags=["Notifications"],
    )
    def delete(self, request):
        serializer = DeviceTokenRemoveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DeviceTokenService.remove(request.user, serializer.validated_data["token"])
        if not result.success:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)
