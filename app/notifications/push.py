"""
Push notification senders.

A sender delivers one notification to a list of device tokens and reports
which tokens the provider rejected as permanently invalid. The active
sender is chosen by the PUSH_SENDER_BACKEND setting:

    notifications.push.LoggingPushSender   (default, logs only)
    notifications.push.FCMPushSender       (Firebase Cloud Messaging)

Failures of the whole request raise DeliveryError; ``is_permanent`` tells
the task whether a retry can help.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Base exception for delivery failures."""

    def __init__(self, message: str, code: str, is_permanent: bool = False):
        super().__init__(message)
        self.code = code
        self.is_permanent = is_permanent


@dataclass
class PushResult:
    sent: int = 0
    invalid_tokens: list[str] = field(default_factory=list)


class LoggingPushSender:
    """Sender that only logs; used in development and tests."""

    def send(self, tokens: list[str], title: str, body: str, data: dict) -> PushResult:
        logger.info(
            f"Push to {len(tokens)} device(s): {title!r} - {body!r} "
            f"(type={data.get('type')})"
        )
        return PushResult(sent=len(tokens))


class FCMPushSender:
    """
    Firebase Cloud Messaging sender (legacy HTTP API).

    Error classification:
        401 from the endpoint: invalid server key, permanent
        429 / 5xx / network errors: transient, the task retries
        per-token NotRegistered / InvalidRegistration: token is pruned
    """

    INVALID_TOKEN_ERRORS = {"NotRegistered", "InvalidRegistration", "MismatchSenderId"}

    def __init__(
        self,
        server_key: str | None = None,
        endpoint: str | None = None,
        timeout: float = 10.0,
    ):
        self.server_key = server_key or settings.FCM_SERVER_KEY
        self.endpoint = endpoint or settings.FCM_ENDPOINT
        self.timeout = timeout

    def send(self, tokens: list[str], title: str, body: str, data: dict) -> PushResult:
        if not self.server_key:
            raise DeliveryError(
                "FCM_SERVER_KEY is not configured", "invalid_credentials", is_permanent=True
            )

        try:
            resp = httpx.post(
                self.endpoint,
                headers={"Authorization": f"key={self.server_key}"},
                json={
                    "registration_ids": tokens,
                    "notification": {"title": title, "body": body},
                    "data": {key: str(value) for key, value in data.items()},
                },
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise DeliveryError(str(e), "timeout") from e
        except httpx.HTTPError as e:
            raise DeliveryError(str(e), "connection_error") from e

        if resp.status_code == 401:
            raise DeliveryError("FCM rejected the server key", "invalid_credentials", is_permanent=True)
        if resp.status_code == 429:
            raise DeliveryError("FCM rate limit reached", "rate_limited")
        if resp.status_code >= 500:
            raise DeliveryError(f"FCM returned {resp.status_code}", "provider_unavailable")
        if resp.status_code >= 400:
            raise DeliveryError(
                f"FCM rejected the request: {resp.text[:200]}",
                "invalid_request",
                is_permanent=True,
            )

        results = resp.json().get("results", [])
        invalid = [
            token
            for token, outcome in zip(tokens, results)
            if outcome.get("error") in self.INVALID_TOKEN_ERRORS
        ]
        sent = sum(1 for outcome in results if "message_id" in outcome)
        return PushResult(sent=sent, invalid_tokens=invalid)


def get_push_sender():
    """Instantiate the sender named by PUSH_SENDER_BACKEND."""
    return import_string(settings.PUSH_SENDER_BACKEND)()
