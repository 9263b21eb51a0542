# Loading the Celery app with Django lets @shared_task functions (the push
# dispatch in notifications.tasks) bind to it in web and worker processes.
from config.celery import app as celery_app

__all__ = ("celery_app",)
