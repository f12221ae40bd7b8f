"""Bearer JWT authentication backend for Django REST Framework.

Tokens are issued by an external identity provider.  Two verification
modes are supported, chosen by configuration:

* **JWKS** (``JWT_JWKS_URL`` set): asymmetric verification; signing keys
  are fetched from the provider and cached in-memory (300 s) via
  ``PyJWKClient``.
* **Shared secret** (default): HMAC verification with
  ``JWT_SIGNING_KEY``.

The authenticated caller is exposed as a ``Principal`` carrying the
subject id and the role claim.

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401.
* ``algorithms`` is hard-coded to the configured value.  Never derived
  from the incoming token.
* Tokens without a recognised role are rejected.
"""

from __future__ import annotations

from typing import Optional

import jwt as pyjwt
import structlog
from django.conf import settings
from jwt import PyJWKClient
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from modules.core.identity import Principal, Role

logger = structlog.get_logger(__name__)

_jwks_client: Optional[PyJWKClient] = None


def _get_jwks_client() -> Optional[PyJWKClient]:
    global _jwks_client
    if not settings.JWT_JWKS_URL:
        return None
    if _jwks_client is None:
        _jwks_client = PyJWKClient(
            settings.JWT_JWKS_URL,
            cache_jwk_set=True,
            lifespan=300,
        )
    return _jwks_client


class JSONWebTokenAuthentication(BaseAuthentication):
    """DRF authentication class that validates Bearer tokens."""

    keyword = "Bearer"

    # ------------------------------------------------------------------
    # Public API (DRF contract)
    # ------------------------------------------------------------------

    def authenticate(self, request):
        """Return ``(Principal, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None  # no credentials; DRF answers 401 for protected views

        token = self._extract_token(header)
        payload = self._decode_token(token)
        principal = self._principal_from_payload(payload)
        logger.info(
            "jwt_authenticated",
            sub=principal.id,
            role=principal.role,
        )
        return (principal, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _decode_token(token: str) -> dict:
        options = {"require": ["sub", "exp"]}
        try:
            jwks_client = _get_jwks_client()
            if jwks_client is not None:
                key = jwks_client.get_signing_key_from_jwt(token).key
            else:
                key = settings.JWT_SIGNING_KEY
            payload = pyjwt.decode(
                token,
                key,
                algorithms=[settings.JWT_ALGORITHM],
                audience=settings.JWT_AUDIENCE or None,
                issuer=settings.JWT_ISSUER or None,
                options=options,
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc
        return payload

    @staticmethod
    def _principal_from_payload(payload: dict) -> Principal:
        role = payload.get(settings.JWT_ROLE_CLAIM)
        if role not in Role.values:
            logger.warning("jwt_unknown_role", sub=payload.get("sub"), role=role)
            raise AuthenticationFailed("Token does not carry a recognised role.")
        return Principal(id=str(payload["sub"]), role=role)
