"""
Authentication views.

Login issues a simplejwt access/refresh pair, returns the access token in
the body and also drops it into an HttpOnly cookie for browser clients
(see :class:`records.authentication.CookieJWTAuthentication`). The role
is always read from the stored user, never from the request body.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.contrib.auth import authenticate
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from .serializers.auth import LoginSerializer, LogoutSerializer, RefreshSerializer
from .services.audit import log_action

logger = logging.getLogger(__name__)


def _user_payload(user) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'role': user.role,
    }


def _set_auth_cookie(response: Response, access: str) -> None:
    lifetime = settings.SIMPLE_JWT['ACCESS_TOKEN_LIFETIME']
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        access,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=settings.AUTH_COOKIE_SECURE,
        samesite='Lax',
    )


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']
    ip = request.META.get('REMOTE_ADDR')

    user = authenticate(request, username=username, password=s.validated_data['password'])
    if not user:
        # only the username is recorded for failed attempts
        log_action(user=None, action='login', object_type='user', object_id=None,
                   detail={'result': 'fail', 'username': username, 'ip': ip})
        logger.warning('Failed login for %s from %s', username, ip)
        raise AuthenticationFailed('Invalid username or password.')

    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip})

    refresh = RefreshToken.for_user(user)
    access = str(refresh.access_token)
    resp = Response({
        'success': True,
        'message': 'Login successful',
        'token': access,
        'refresh': str(refresh),
        'user': _user_payload(user),
    })
    _set_auth_cookie(resp, access)
    return resp

# ScopedRateThrottle reads throttle_scope from the view class @api_view generated
login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_view(request):
    """Exchange a refresh token for a new access token."""
    s = RefreshSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    inner = TokenRefreshSerializer(data={'refresh': s.validated_data['refresh']})
    try:
        inner.is_valid(raise_exception=True)
    except TokenError as e:
        raise InvalidToken(e.args[0])
    data = {'success': True, 'token': inner.validated_data['access']}
    if 'refresh' in inner.validated_data:
        data['refresh'] = inner.validated_data['refresh']
    resp = Response(data)
    _set_auth_cookie(resp, data['token'])
    return resp


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Blacklist the given refresh token, or every outstanding one of the caller."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            raise ValidationError({'refresh': [str(e)]})
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)

    log_action(user=request.user, action='logout', object_type='user', object_id=request.user.id,
               detail={'blacklisted': count})
    resp = Response({'success': True, 'message': 'Logged out', 'blacklisted': count})
    resp.delete_cookie(settings.AUTH_COOKIE_NAME, samesite='Lax')
    return resp


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    return Response({'success': True, 'user': _user_payload(request.user)})
