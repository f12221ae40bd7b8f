"""Base class for business-rule violations raised by the service layer.

Every domain error carries a stable machine-readable ``code`` and a
``category`` used by the API layer to pick an HTTP status.  Categories:

- ``not_found``: the referenced entity does not exist.
- ``forbidden``: the caller does not own the resource or lacks the role.
- ``conflict``: the current state does not allow the operation.
- ``invalid``: the request itself breaks a rule.
"""

from __future__ import annotations


class DomainError(Exception):
    """A business rule was violated.  Never retried."""

    code: str = "domain_error"
    category: str = "invalid"
