"""
Bearer token verification.

Tokens are issued by the external identity provider; this service only
verifies them and reads the subject and email claims.
"""
from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Header, Request
from pydantic import BaseModel

from grocery_receipts.errors import UnauthorizedError


class CurrentUser(BaseModel):
    user_id: str
    email: Optional[str] = None


class TokenVerifier:
    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience or None
        self.issuer = issuer or None

    def verify(self, token: str) -> CurrentUser:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.PyJWTError as e:
            raise UnauthorizedError(f"Invalid or expired token: {e}") from e

        user_id = payload.get("sub") or payload.get("uid")
        if not user_id:
            raise UnauthorizedError("Token has no subject")
        return CurrentUser(user_id=user_id, email=payload.get("email"))


def _bearer_token(authorization: str) -> str:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("Invalid token format")
    return token.strip()


def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Optional[CurrentUser]:
    """Anonymous callers get None; a token that is present must be valid."""
    if not authorization:
        return None
    return request.app.state.services.token_verifier.verify(_bearer_token(authorization))


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> CurrentUser:
    if not authorization:
        raise UnauthorizedError("Missing token")
    return request.app.state.services.token_verifier.verify(_bearer_token(authorization))
