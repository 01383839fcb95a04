"""Authentication helpers and FastAPI security dependencies.

This module provides utilities to decode JWT tokens, resolve the account
behind a token, and the FastAPI dependencies `get_current_user` and
`require_admin` used by the routes.

Token verification raises HTTPExceptions on failure so the helpers can
be used directly inside route dependencies. `resolve_token_user` is the
non-raising variant used by the admin-users endpoint, which reports
errors in its own `{error: ...}` format.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session
from .config import settings
from .database import engine
from . import models, repositories

bearer_scheme = HTTPBearer()


def decode_token(token: str):
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def resolve_token_user(token: Optional[str]) -> Optional[models.UserProfile]:
    """Return the account a token belongs to, or `None` if it does not resolve."""
    if not token:
        return None
    try:
        payload = decode_token(token)
    except HTTPException:
        return None
    user_id = payload.get('user_id')
    if not user_id:
        return None
    with Session(engine) as session:
        return repositories.UserRepository(session).get(user_id)


def get_current_user(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)):
    """FastAPI dependency that returns the authenticated, active user.

    The function extracts the bearer token from the request, decodes it
    and performs a database lookup to return the `UserProfile`. It raises
    HTTPException(401) for any authentication issue and 403 for a
    disabled account.
    """
    payload = decode_token(credentials.credentials)
    user_id = payload.get('user_id')
    if not user_id:
        raise HTTPException(status_code=401, detail='invalid token payload')
    with Session(engine) as session:
        user = repositories.UserRepository(session).get(user_id)
        if not user:
            raise HTTPException(status_code=401, detail='user not found')
        if not user.is_active:
            raise HTTPException(status_code=403, detail='account is disabled')
        return user


def require_admin(user: models.UserProfile = Depends(get_current_user)):
    """FastAPI dependency restricting a route to `ADMIN` accounts."""
    if user.role != models.UserRole.ADMIN:
        raise HTTPException(status_code=403, detail='admin privileges required')
    return user
