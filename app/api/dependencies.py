"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, status

_BEARER_PREFIX = "bearer "


def get_bearer_credential(authorization: str | None = Header(default=None)) -> str:
    """
    Extract the caller's Google access token from ``Authorization: Bearer``.

    The token is passed through to upstream calls for this request only.
    """

    value = (authorization or "").strip()
    if not value.lower().startswith(_BEARER_PREFIX) or not value[len(_BEARER_PREFIX):].strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="A bearer access token is required.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return value[len(_BEARER_PREFIX):].strip()
