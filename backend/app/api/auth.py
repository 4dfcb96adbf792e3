"""Minimal auth dependency.

Stub implementation that reads the user id from a bearer token. Requests
without an Authorization header are guests. Real token validation belongs
to the identity service in front of this API.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from backend.app.db.context import RequestContext


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Stub implementation that either:
    - Parses a simple "Bearer <user_id>" format (positive integer)
    - Returns a guest context if no header

    Args:
        authorization: Authorization header (e.g., "Bearer 42")

    Returns:
        RequestContext with user_id, or without one for guests

    Raises:
        HTTPException: If authorization is present but invalid
    """
    if not authorization:
        return RequestContext()

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:].strip()  # Strip "Bearer "

    try:
        user_id = int(token)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format (expected user id)",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if user_id < 1:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return RequestContext(user_id=user_id)


async def require_user(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
) -> int:
    """Authenticated user id; 401 for guests."""
    if ctx.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ctx.user_id
