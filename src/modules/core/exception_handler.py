"""Uniform error envelope for every API response.

Rendering is delegated to ``drf-standardized-errors``
(``{"type": ..., "errors": [{"code", "detail", "attr"}]}``).  Domain
errors raised by the service layer are converted into DRF API exceptions
here, so views never translate them one by one.
"""

from __future__ import annotations

import structlog
from drf_standardized_errors.handler import ExceptionHandler
from rest_framework import exceptions, status

from shared.domain.exceptions import DomainError

logger = structlog.get_logger(__name__)


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The resource state does not allow this operation."
    default_code = "conflict"


class BusinessRuleViolation(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request violates a business rule."
    default_code = "business_rule_violation"


_API_EXCEPTION_BY_CATEGORY: dict[str, type[exceptions.APIException]] = {
    "not_found": exceptions.NotFound,
    "forbidden": exceptions.PermissionDenied,
    "conflict": Conflict,
    "invalid": BusinessRuleViolation,
}


class DomainExceptionHandler(ExceptionHandler):
    """Maps ``DomainError`` categories to HTTP statuses."""

    def convert_known_exceptions(self, exc: Exception) -> Exception:
        if isinstance(exc, DomainError):
            api_exception_class = _API_EXCEPTION_BY_CATEGORY.get(
                exc.category, BusinessRuleViolation
            )
            logger.info(
                "api.domain_error",
                code=exc.code,
                category=exc.category,
                detail=str(exc),
            )
            return api_exception_class(detail=str(exc), code=exc.code)
        return super().convert_known_exceptions(exc)
