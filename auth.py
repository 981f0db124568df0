"""
FastAPI JWT authentication dependency for the certificate API.

Protected routes declare `claims: dict = Depends(get_current_user)`.

Required environment variable (set in .env):
    CERTIFICATE_JWT_SECRET  -  shared secret used to sign HS256 bearer tokens
"""

from __future__ import annotations

import os

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

_bearer = HTTPBearer(auto_error=True)


def decode_token(token: str) -> dict:
    """
    Decode and validate an HS256 bearer token.  Raises jwt.InvalidTokenError
    (or a subclass) on failure.
    """
    secret = os.environ.get("CERTIFICATE_JWT_SECRET", "")
    if not secret:
        raise jwt.InvalidTokenError(
            "CERTIFICATE_JWT_SECRET is not set, cannot validate token."
        )
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        options={"verify_aud": False},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer),
) -> dict:
    """
    Returns the decoded token claims.
    Raises HTTP 401 on any validation failure.
    """
    try:
        return decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {exc}",
            headers={"WWW-Authenticate": "Bearer"},
        )
