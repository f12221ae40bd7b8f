"""Role gates for the role-scoped API surfaces."""

from __future__ import annotations

from rest_framework.permissions import BasePermission

from modules.core.identity import Role


class HasRole(BasePermission):
    """Allow callers whose ``role`` is in ``allowed_roles``."""

    allowed_roles: frozenset[str] = frozenset()
    message = "Your role is not allowed to perform this action."

    def has_permission(self, request, view) -> bool:
        role = getattr(request.user, "role", None)
        return role in self.allowed_roles


class IsCustomer(HasRole):
    allowed_roles = frozenset({Role.CUSTOMER})


class IsVendor(HasRole):
    allowed_roles = frozenset({Role.VENDOR})


class IsCsrOrAdmin(HasRole):
    allowed_roles = frozenset({Role.CSR, Role.ADMIN})


class IsAdmin(HasRole):
    allowed_roles = frozenset({Role.ADMIN})
