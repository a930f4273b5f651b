"""
Role based permission classes.

Each endpoint declares an explicit allow-list of :class:`Role` values;
callers with any other role are denied.
"""
from rest_framework.permissions import BasePermission

from .models import Role

CLINICAL_STAFF_ROLES = frozenset({Role.DOCTOR.value, Role.ADMIN.value, Role.NURSE.value})
RECORD_EDITOR_ROLES = frozenset({Role.DOCTOR.value, Role.ADMIN.value})
RECORD_READER_ROLES = frozenset({Role.DOCTOR.value, Role.ADMIN.value, Role.NURSE.value, Role.PATIENT.value})
PRESCRIBER_ROLES = frozenset({Role.DOCTOR.value})


def HasRole(*roles):
    """Build a permission class admitting only authenticated users holding one of ``roles``."""
    allowed = frozenset(Role(r).value for r in roles)

    class _HasRole(BasePermission):
        message = 'Your role is not allowed to perform this action.'

        def has_permission(self, request, view) -> bool:  # type: ignore[override]
            user = getattr(request, 'user', None)
            return bool(user and user.is_authenticated and str(getattr(user, 'role', '')) in allowed)

    _HasRole.__name__ = 'HasRole[' + ','.join(sorted(allowed)) + ']'
    return _HasRole
