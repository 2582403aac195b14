"""Viewer identity dependency. Login and session management live in the external auth provider."""

from typing import Annotated

import jwt
from fastapi import Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.api.errors import api_error
from app.core.security import decode_access_token
from app.schemas.entitlement import CurrentViewer

security = HTTPBearer(auto_error=False)


def get_current_viewer(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> CurrentViewer | None:
    """
    Dependency: decode an optional Bearer JWT into the viewer identity.

    No header means an anonymous viewer (None). A present but invalid token is a 401
    so the client can re-authenticate instead of silently getting a truncated view.
    """
    if credentials is None:
        return None
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError:
        raise api_error(
            status.HTTP_401_UNAUTHORIZED,
            "Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    sub = payload.get("sub")
    if not sub:
        raise api_error(
            status.HTTP_401_UNAUTHORIZED,
            "Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentViewer(id=str(sub))
