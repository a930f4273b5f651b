from django.db import DatabaseError, connections
from django.http import JsonResponse
import logging

logger = logging.getLogger(__name__)


def healthz(request):
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            row = c.fetchone()
    except DatabaseError as e:
        logger.error('Health probe failed: %s', e)
        return JsonResponse({'success': False, 'db': False, 'message': 'Database unavailable'}, status=503)
    return JsonResponse({'success': True, 'db': bool(row and row[0] == 1)})
