"""
Notification service layer.

Services:
    DeviceTokenService: Registration and removal of push tokens

Usage:
    from notifications.services import DeviceTokenService

    result = DeviceTokenService.register(user, token="fcm-token", device_type="android")
    if result.success:
        device = result.data
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from notifications.models import DeviceToken, DeviceType

if TYPE_CHECKING:
    from authentication.models import User


class DeviceTokenService(BaseService):
    """Push token management."""

    @classmethod
    def register(
        cls, user: User, token, device_type=DeviceType.WEB
    ) -> ServiceResult[DeviceToken]:
        """
        Register a token for the user, taking it over from any previous owner.

        Error codes:
            VALIDATION_ERROR: token missing or unknown device type
        """
        token = token.strip() if isinstance(token, str) else None
        invalid = cls.validate_required(token=token)
        if invalid:
            return invalid

        if device_type not in DeviceType.values:
            return ServiceResult.failure(
                f"Invalid device type: {device_type}",
                error_code="VALIDATION_ERROR",
                errors={"deviceType": [f"Must be one of {', '.join(DeviceType.values)}"]},
            )

        device, created = DeviceToken.objects.update_or_create(
            token=token,
            defaults={"user": user, "device_type": device_type},
        )
        cls.get_logger().info(
            f"{'Registered' if created else 'Updated'} {device_type} token for user {user.id}"
        )
        return ServiceResult.success(device)

    @classmethod
    def remove(cls, user: User, token) -> ServiceResult[bool]:
        """
        Remove one of the user's tokens. Removing an unknown token succeeds
        with ``False``.
        """
        token = token.strip() if isinstance(token, str) else None
        invalid = cls.validate_required(token=token)
        if invalid:
            return invalid

        deleted, _ = DeviceToken.objects.filter(user=user, token=token).delete()
        return ServiceResult.success(bool(deleted))
