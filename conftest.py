"""
Root pytest configuration for the Django project.

Sets environment defaults before pytest-django imports the settings, so
the suite runs against SQLite with Celery tasks executed inline. Real
values from the environment take precedence.

App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production-use-0123456789")
os.environ.setdefault("DEBUG", "True")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "True")
os.environ.setdefault("PUSH_SENDER_BACKEND", "notifications.push.LoggingPushSender")
