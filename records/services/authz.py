"""
Authorization contract shared by every records/prescriptions operation.

Views turn the authenticated request into an :class:`Identity` once and
pass it explicitly to the service layer; nothing below reads ambient
request state.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from rest_framework.exceptions import NotAuthenticated, PermissionDenied

from records.models import Role


@dataclass(frozen=True)
class Identity:
    """The caller's decoded ``{id, role}`` pair; ``role`` is always a :class:`Role` value."""
    id: str
    role: str

    @classmethod
    def from_user(cls, user) -> 'Identity':
        return cls(id=str(user.pk), role=Role(user.role).value)

    def has_role(self, *roles: Role) -> bool:
        return self.role in {Role(r).value for r in roles}


def ids_equal(a: Any, b: Any) -> bool:
    """Opaque identifier equality used for every ownership comparison."""
    if a is None or b is None:
        return False
    return str(a) == str(b)


def require_authenticated(request) -> Identity:
    user = getattr(request, 'user', None)
    if not (user and getattr(user, 'is_authenticated', False)):
        raise NotAuthenticated('Authentication credentials were not provided.')
    return Identity.from_user(user)


def require_role(identity: Identity, allowed_roles: Iterable[Role]) -> None:
    if identity.role not in {Role(r).value for r in allowed_roles}:
        raise PermissionDenied('Your role is not allowed to perform this action.')


def is_owner(resource, identity: Identity, owner_field: str) -> bool:
    owner_id = getattr(resource, f'{owner_field}_id', None)
    if owner_id is None:
        owner_id = getattr(resource, owner_field, None)
    return ids_equal(owner_id, identity.id)


def require_ownership(resource, identity: Identity, owner_field: str, message: str | None = None) -> None:
    """Fail with 403 unless ``resource.<owner_field>`` is the caller.

    Callers must have already confirmed the resource exists.
    """
    if not is_owner(resource, identity, owner_field):
        raise PermissionDenied(message or 'You are not authorized to perform this action.')
