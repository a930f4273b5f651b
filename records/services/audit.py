"""
Audit trail writes.

Each mutation records one :class:`AuditEvent` inside the transaction of
the change it describes, so a rolled back change leaves no audit row.
"""
import logging
from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model

from records.models import AuditEvent

logger = logging.getLogger(__name__)

User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None, object_id: Optional[int] = None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    event = AuditEvent.objects.create(
        user=user if isinstance(user, User) else None,
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )
    logger.debug('audit %s %s#%s by %s', action, object_type, object_id, event.user_id)
    return event


def log_identity_action(*, identity, action: str, object_type: str, object_id: int, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    """Same as :func:`log_action` for service calls that only hold an ``Identity``."""
    event = AuditEvent.objects.create(
        user_id=int(identity.id),
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )
    logger.debug('audit %s %s#%s by %s', action, object_type, object_id, identity.id)
    return event
