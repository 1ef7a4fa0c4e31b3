"""
consultation/auth.py

JWT helpers shared by the HTTP API and the WebSocket handshake.
Tokens carry the account id (`user_id`) and its `role`.
"""

from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser, User
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken, RefreshToken


def role_of(user):
    profile = getattr(user, "profile", None)
    if profile is not None:
        return profile.role
    if getattr(user, "is_superuser", False):
        return "admin"
    return None


def tokens_for(user):
    refresh = RefreshToken.for_user(user)
    refresh["role"] = role_of(user)
    return {
        "access" : str(refresh.access_token),
        "refresh": str(refresh),
    }


def _token_from_scope(scope):
    qs = parse_qs(scope.get("query_string", b"").decode())
    if qs.get("token"):
        return qs["token"][0]

    for name, value in scope.get("headers", []):
        if name == b"authorization":
            parts = value.decode().split()
            if len(parts) == 2 and parts[0].lower() == "bearer":
                return parts[1]
    return None


@database_sync_to_async
def get_user_for_token(raw_token):
    try:
        token = AccessToken(raw_token)
    except TokenError:
        return AnonymousUser()

    user = (
        User.objects.select_related("profile")
        .filter(pk=token.get(api_settings.USER_ID_CLAIM), is_active=True)
        .first()
    )
    return user or AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    """Puts the token's account (or AnonymousUser) into scope["user"]."""

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        raw_token = _token_from_scope(scope)
        scope["user"] = await get_user_for_token(raw_token) if raw_token else AnonymousUser()
        return await super().__call__(scope, receive, send)


def JWTAuthMiddlewareStack(inner):
    return JWTAuthMiddleware(inner)
