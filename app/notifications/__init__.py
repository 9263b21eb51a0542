"""
Notifications app for push delivery to disconnected devices.

This app provides:
- DeviceToken model for registered push tokens
- DeviceTokenService for registering and removing tokens
- send_push_notification Celery task with pluggable senders (log, FCM)
- REST API for device token registration

Usage:
    from notifications.tasks import send_push_notification

    send_push_notification.delay(
        user_id=user.id,
        title="Alice",
        body="See you at 6",
        data={"type": "new_message", "messageId": "42"},
    )
"""
