"""WebSocket authentication middleware for JWT bearer tokens."""

import logging
from urllib.parse import parse_qs

from asgiref.sync import sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.tokens import AccessToken

User = get_user_model()
logger = logging.getLogger(__name__)


class JWTAuthMiddleware(BaseMiddleware):
    """
    Authenticate WebSocket connections with the access token issued by the
    identity provider, passed as ?token=... in the querystring.
    """

    async def __call__(self, scope, receive, send):
        query_string = scope.get("query_string", b"").decode()
        params = parse_qs(query_string)

        scope["user"] = AnonymousUser()
        token_list = params.get("token")
        if token_list:
            try:
                access = AccessToken(token_list[0])
                user_id = access["user_id"]
                scope["user"] = await sync_to_async(User.objects.get)(id=user_id)
            except Exception as e:
                logger.debug("JWT auth failed: %s", e)

        return await super().__call__(scope, receive, send)
