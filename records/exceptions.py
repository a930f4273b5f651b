"""
Unified API error handling.

Every failure leaves the API as ``{"success": false, "message": ...}``
with the HTTP status carrying the error kind. Unexpected exceptions are
logged with their traceback and reported with a generic message.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class Conflict(APIException):
    """A concurrent update beat this one to the row; the caller may retry."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The resource was modified concurrently. Please retry.'
    default_code = 'conflict'


def _first_message(detail) -> str:
    if isinstance(detail, list):
        return _first_message(detail[0]) if detail else 'Invalid input.'
    if isinstance(detail, dict):
        for key, value in detail.items():
            msg = _first_message(value)
            return msg if key == 'non_field_errors' else f'{key}: {msg}'
        return 'Invalid input.'
    return str(detail)


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('Unhandled error in %s', view.__class__.__name__ if view else 'view', exc_info=exc)
        return Response({'success': False, 'message': 'Internal server error'}, status=500)

    if isinstance(exc, ValidationError):
        payload = {'success': False, 'message': _first_message(resp.data), 'errors': resp.data}
    else:
        detail = resp.data.get('detail') if isinstance(resp.data, dict) else resp.data
        payload = {'success': False, 'message': _first_message(detail)}
    if resp.status_code >= 500:
        logger.error('API error %s: %s', resp.status_code, payload['message'])
    return Response(payload, status=resp.status_code, headers=_passthrough_headers(resp))


def _passthrough_headers(resp) -> dict:
    headers = {}
    for name in ('WWW-Authenticate', 'Retry-After', 'Allow'):
        if resp.has_header(name):
            headers[name] = resp[name]
    return headers
