"""
Session routes backed by the identity provider.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from cms_backend.dependencies import AUTH_NOT_CONFIGURED, get_identity_provider
from cms_backend.errors import BackendUnavailableError, IdentityProviderError, UnauthorizedError
from cms_backend.identity import IdentityProvider, parse_bearer_token
from cms_backend.schemas import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _require_provider(provider: Optional[IdentityProvider]) -> IdentityProvider:
    if provider is None:
        raise BackendUnavailableError(AUTH_NOT_CONFIGURED)
    return provider


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    provider: Optional[IdentityProvider] = Depends(get_identity_provider),
):
    session = _require_provider(provider).issue_session(payload.email, payload.password)
    if session is None or session.user is None:
        raise UnauthorizedError("Invalid email or password")
    return LoginResponse(
        message="Login successful",
        token=session.access_token,
        refreshToken=session.refresh_token,
        user=session.user.as_dict(),
    )


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    payload: RefreshRequest,
    provider: Optional[IdentityProvider] = Depends(get_identity_provider),
):
    session = _require_provider(provider).refresh_session(payload.refreshToken)
    if session is None:
        raise UnauthorizedError("Invalid refresh token")
    return RefreshResponse(
        message="Token refreshed successfully",
        token=session.access_token,
        refreshToken=session.refresh_token,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    authorization: Optional[str] = Header(default=None),
    provider: Optional[IdentityProvider] = Depends(get_identity_provider),
):
    provider = _require_provider(provider)
    token = parse_bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Authorization header required")
    try:
        provider.sign_out(token)
    except IdentityProviderError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    return MessageResponse(message="Logout successful")
