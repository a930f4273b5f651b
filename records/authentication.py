"""
Custom JWT authentication backend.

Subclasses simplejwt's ``JWTAuthentication`` so that browser clients,
which keep the access token in an HttpOnly cookie, authenticate the same
way as API clients sending ``Authorization: Bearer <token>``. The header
wins when both are present. Keeping this class separate from the views
avoids circular imports while DRF initialises authentication classes.
"""
from __future__ import annotations

import logging

from django.conf import settings
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken

logger = logging.getLogger(__name__)


class CookieJWTAuthentication(JWTAuthentication):
    """JWT from the ``Authorization`` header, falling back to the auth cookie."""

    def authenticate(self, request):
        header = self.get_header(request)
        if header is not None:
            return super().authenticate(request)

        raw_token = request.COOKIES.get(settings.AUTH_COOKIE_NAME)
        if not raw_token:
            return None
        try:
            validated_token = self.get_validated_token(raw_token.encode())
        except InvalidToken:
            # stale cookie: the caller is anonymous
            logger.debug('Ignoring invalid auth cookie')
            return None
        return self.get_user(validated_token), validated_token
