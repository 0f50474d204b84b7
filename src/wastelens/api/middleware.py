"""Middleware: bearer API key authentication."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from wastelens.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)


def _key_matches(presented: str, expected: str) -> bool:
    return secrets.compare_digest(presented.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Reject requests without a valid bearer key when WASTELENS_API_KEY is set."""
    settings: Settings = request.app.state.settings
    expected = settings.api_key
    if expected is None:
        return

    if credentials is not None and _key_matches(credentials.credentials, expected):
        return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
