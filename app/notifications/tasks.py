"""
Celery tasks for notification delivery.

Tasks:
    send_push_notification: Deliver a notification to every device of a user

Design:
    - Tasks receive plain ids and strings so they serialize as JSON
    - Permanent vs transient errors are classified for retry logic
    - Tokens the provider reports as invalid are deleted
    - A missing token list is not an error; the user simply gets no push

Usage:
    from notifications.tasks import send_push_notification

    send_push_notification.delay(user_id=7, title="Alice", body="hi", data={...})
"""

from __future__ import annotations

import logging

from celery import shared_task

from notifications.models import DeviceToken
from notifications.push import DeliveryError, get_push_sender

logger = logging.getLogger(__name__)


# Error classification for retry logic
PERMANENT_ERRORS = {
    "invalid_credentials",
    "invalid_request",
}
TRANSIENT_ERRORS = {
    "rate_limited",
    "timeout",
    "provider_unavailable",
    "connection_error",
}


@shared_task(
    bind=True,
    autoretry_for=(DeliveryError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_push_notification(
    self, user_id: int, title: str, body: str, data: dict | None = None
) -> int:
    """
    Send a push notification to all registered devices of a user.

    Flow:
        1. Load the user's device tokens; nothing to do without any
        2. Call the configured sender
        3. Delete tokens reported as invalid
        4. On permanent error: log and give up
        5. On transient error: raise for retry

    Returns:
        Number of devices the provider accepted

    Raises:
        DeliveryError: On transient failure (triggers retry)
    """
    tokens = list(DeviceToken.objects.filter(user_id=user_id).values_list("token", flat=True))
    if not tokens:
        logger.debug(f"No device tokens for user {user_id}, skipping push")
        return 0

    try:
        result = get_push_sender().send(tokens, title, body, data or {})
    except DeliveryError as e:
        if e.is_permanent or e.code in PERMANENT_ERRORS:
            logger.warning(
                f"Push notification permanently failed for user {user_id}: {e.code} - {e}"
            )
            return 0
        logger.warning(
            f"Push notification transiently failed for user {user_id}: "
            f"{e.code} - {e}, will retry"
        )
        raise

    if result.invalid_tokens:
        deleted, _ = DeviceToken.objects.filter(token__in=result.invalid_tokens).delete()
        logger.info(f"Removed {deleted} invalid device token(s) of user {user_id}")

    logger.info(f"Push notification sent to {result.sent}/{len(tokens)} device(s) of user {user_id}")
    return result.sent
