"""
verify.py
---------
Supabase access-token verification (ES256 via the project JWKS).

`auth_dependency` guards endpoints that act on the signed-in user's own
data. `optional_auth_dependency` serves endpoints that also accept
anonymous app sessions, such as event ingestion.
"""

from functools import lru_cache

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from carsuggester.config import settings

SUPABASE_AUDIENCE = "authenticated"
SUPABASE_ALGORITHMS = ["ES256"]

_required_bearer = HTTPBearer()
_optional_bearer = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def _jwk_client() -> PyJWKClient:
    # PyJWKClient caches fetched keys itself
    return PyJWKClient(settings.jwks_url())


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    """Decode and validate a Supabase access token, raising 401 on any failure."""
    try:
        signing_key = _jwk_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=SUPABASE_ALGORITHMS,
            audience=SUPABASE_AUDIENCE,
            options={"verify_exp": True},
        )
    except Exception as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_required_bearer)) -> dict:
    return verify_jwt(credentials.credentials)


def optional_auth_dependency(
    credentials: HTTPAuthorizationCredentials | None = Depends(_optional_bearer),
) -> dict | None:
    """Claims when a bearer token is sent; None for anonymous callers. A bad token is still a 401."""
    if credentials is None:
        return None
    return verify_jwt(credentials.credentials)


def subject_from_claims(claims: dict) -> str:
    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Token has no subject")
    return subject
