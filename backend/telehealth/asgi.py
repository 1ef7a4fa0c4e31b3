"""
telehealth/asgi.py

HTTP goes to Django, WebSocket goes through JWT auth to the consultation relay.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "telehealth.settings")

# Django must be set up before the consumers (and their model imports) load.
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402

import consultation.routing  # noqa: E402
from consultation.auth import JWTAuthMiddlewareStack  # noqa: E402

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": JWTAuthMiddlewareStack(
        URLRouter(
            consultation.routing.websocket_urlpatterns
        )
    ),
})
