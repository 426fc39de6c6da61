from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Header, HTTPException, status
from jwt import PyJWKClient
from jwt.exceptions import InvalidTokenError, PyJWKClientError

from reben.core.settings import get_settings


@dataclass(frozen=True)
class VerifiedSupabaseAuth:
    access_token: str
    claims: dict[str, Any]

    @property
    def user_id(self) -> str | None:
        sub = self.claims.get("sub")
        if isinstance(sub, str) and sub.strip():
            return sub.strip()
        return None


def unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise unauthorized()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise unauthorized()
    return token.strip()


def _decode_supabase_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        signing_key = PyJWKClient(settings.SUPABASE_JWKS_URL).get_signing_key_from_jwt(token).key
        decoded = jwt.decode(
            token,
            signing_key,
            algorithms=["RS256", "ES256"],
            issuer=settings.SUPABASE_ISSUER,
            options={"verify_aud": False},
        )
    except (InvalidTokenError, PyJWKClientError, ValueError):
        raise unauthorized() from None

    if not isinstance(decoded, dict):
        raise unauthorized()
    return decoded


def verify_supabase_auth(authorization: str | None = Header(default=None)) -> VerifiedSupabaseAuth:
    token = _extract_bearer_token(authorization)
    return VerifiedSupabaseAuth(access_token=token, claims=_decode_supabase_token(token))
