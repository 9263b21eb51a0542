"""
Celery configuration for the Django application.

The chat service hands push notifications for offline recipients to Celery
so a slow or failing provider never delays message delivery.

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps; set
CELERY_TASK_ALWAYS_EAGER=True to run them inline (tests, local development).

Usage:
    from notifications.tasks import send_push_notification

    send_push_notification.delay(user_id=user.id, title="...", body="...")

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
