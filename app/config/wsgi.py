"""
WSGI entry point.

Serves the REST endpoints only. The chat WebSocket needs the ASGI
application in config.asgi; use this for management tooling or a
plain HTTP worker pool that sits next to the ASGI nodes.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
