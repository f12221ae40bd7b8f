"""Caller identity as seen by the service layer.

Credentials are issued by an external identity provider; this module only
models what the core needs to enforce ownership and role gates: the
caller's id and role.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.db import models


class Role(models.TextChoices):
    ADMIN = "admin", "Admin"
    VENDOR = "vendor", "Vendor"
    CSR = "csr", "Customer Service"
    CUSTOMER = "customer", "Customer"


STAFF_ROLES: frozenset[str] = frozenset({Role.ADMIN, Role.CSR})


@dataclass(frozen=True)
class Principal:
    """Authenticated caller.  DRF treats it as ``request.user``."""

    id: str
    role: str

    # DRF checks
    is_authenticated = True
    is_active = True

    @property
    def pk(self) -> str:
        return self.id

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def __str__(self) -> str:
        return f"{self.role}:{self.id}"
