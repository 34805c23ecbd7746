"""Verification of Supabase-issued access tokens.

Shoppers and admins sign in through Supabase Auth on the storefront; this
service only verifies the resulting ES256 tokens against the project's
public signing key and never calls Supabase Auth itself.
"""

import json
import logging
from enum import Enum
from functools import lru_cache
from typing import Any

import jwt
from jwt import PyJWK

from src.core.config import get_settings
from src.schemas.auth import TokenPayload

logger = logging.getLogger(__name__)

SIGNING_ALGORITHMS = ["ES256"]
REQUIRED_CLAIMS = ["exp", "iat", "sub"]

# Tolerated clock skew between Supabase and this host
CLOCK_SKEW_SECONDS = 10


class AuthErrorCode(str, Enum):
    """Why a token was refused."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """A token could not be verified. ``code`` tells callers why."""

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# Checked in order, so subclasses come before their bases
_JWT_ERRORS: list[tuple[type[jwt.PyJWTError], AuthErrorCode, str]] = [
    (jwt.ExpiredSignatureError, AuthErrorCode.TOKEN_EXPIRED, "Token has expired"),
    (jwt.InvalidSignatureError, AuthErrorCode.INVALID_SIGNATURE, "Invalid token signature"),
    (jwt.MissingRequiredClaimError, AuthErrorCode.INVALID_TOKEN, "Token missing required claim"),
    (jwt.InvalidAudienceError, AuthErrorCode.INVALID_TOKEN, "Token issued for another audience"),
    (jwt.DecodeError, AuthErrorCode.INVALID_TOKEN, "Invalid token format"),
]


@lru_cache
def get_signing_key() -> Any:
    """Build the verification key from ``SUPABASE_SIGNING_KEY_JWK``.

    Raises:
        AuthError: If the JWK is missing or unusable.
    """
    jwk_json = get_settings().supabase_signing_key_jwk
    if not jwk_json:
        raise AuthError("Signing key not configured", AuthErrorCode.INVALID_TOKEN)

    try:
        return PyJWK.from_dict(json.loads(jwk_json)).key
    except json.JSONDecodeError as e:
        raise AuthError(f"Invalid signing key JWK format: {e}", AuthErrorCode.INVALID_TOKEN) from e
    except (jwt.PyJWKError, jwt.InvalidKeyError) as e:
        raise AuthError(f"Unusable signing key JWK: {e}", AuthErrorCode.INVALID_TOKEN) from e


def decode_jwt(token: str) -> TokenPayload:
    """Verify a bearer token and return its claims.

    Checks the signature, expiry and, when JWT_AUDIENCE is set, the
    audience. Admin rights come from ``app_metadata.role``, which only the
    service role can write, so the payload keeps that claim.

    Raises:
        AuthError: If the token is expired, forged, malformed or incomplete.
    """
    public_key = get_signing_key()

    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            public_key,
            algorithms=SIGNING_ALGORITHMS,
            audience=get_settings().jwt_audience or None,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.PyJWTError as e:
        logger.info("Token rejected: %s", e)
        code, message = next(
            ((code, message) for error_type, code, message in _JWT_ERRORS if isinstance(e, error_type)),
            (AuthErrorCode.INVALID_TOKEN, "Token validation failed"),
        )
        if isinstance(e, jwt.MissingRequiredClaimError):
            message = f"{message}: {e.claim}"
        raise AuthError(message, code) from e

    return TokenPayload(
        sub=claims["sub"],
        email=claims.get("email"),
        role=claims.get("role"),
        app_metadata=claims.get("app_metadata") or {},
        exp=claims["exp"],
        iat=claims["iat"],
        aud=claims.get("aud"),
        iss=claims.get("iss"),
    )
