# consultation/routing.py

from django.urls import re_path

from . import consumers

websocket_urlpatterns = [

    # ── Consultation rooms: chat, typing, call signalling ────────────────────
    re_path(r"ws/consultation/?$", consumers.ConsultationConsumer.as_asgi()),
]
