"""
Identity provider access and per-request identity derivation.

The provider (Supabase Auth / GoTrue) is the only authority on tokens; this
module turns an ``Authorization`` header into either an authenticated
``AuthContext`` (user plus a storage credential scoped to the token) or the
unauthenticated context. Missing headers, malformed headers, rejected tokens
and provider outages all collapse into "unauthenticated" here; routes that
need a user enforce it through ``require_auth``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import requests

from cms_backend.db import StorageCredential
from cms_backend.errors import IdentityProviderError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict:
        # Provider metadata is merged in; id and email always win.
        payload = dict(self.metadata)
        payload["id"] = self.id
        payload["email"] = self.email
        return payload


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str
    user: Optional[AuthUser] = None


@dataclass(frozen=True)
class AuthContext:
    user: Optional[AuthUser] = None
    credential: Optional[StorageCredential] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


UNAUTHENTICATED = AuthContext()


class IdentityProvider(Protocol):
    """Token verification and session issuance offered by the provider."""

    def verify_token(self, token: str) -> Optional[AuthUser]:
        ...

    def issue_session(self, email: str, password: str) -> Optional[AuthSession]:
        ...

    def refresh_session(self, refresh_token: str) -> Optional[AuthSession]:
        ...

    def sign_out(self, access_token: str) -> None:
        ...


def _to_user(payload: dict) -> AuthUser:
    metadata = payload.get("user_metadata")
    return AuthUser(
        id=str(payload["id"]),
        email=payload.get("email"),
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )


class GoTrueIdentityProvider:
    """
    HTTP client for the Supabase Auth (GoTrue) REST API.

    4xx answers mean the token or credentials were rejected and yield None.
    Transport failures, 5xx answers and 2xx bodies that are not a JSON object
    raise IdentityProviderError. Nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url or not anon_key:
            raise ValueError("Supabase URL and anon key are required")
        self.auth_url = base_url.rstrip("/") + "/auth/v1"
        self.anon_key = anon_key
        self.timeout = timeout
        self.http = session or requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Optional[requests.Response]:
        headers = {"apikey": self.anon_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = self.http.request(
                method,
                f"{self.auth_url}{path}",
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise IdentityProviderError(f"Identity provider unreachable: {exc}") from exc
        if response.status_code >= 500:
            raise IdentityProviderError(
                f"Identity provider error: HTTP {response.status_code}"
            )
        if response.status_code >= 400:
            logger.info("Identity provider rejected %s %s: HTTP %s", method, path, response.status_code)
            return None
        return response

    def _json(self, response: requests.Response) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            raise IdentityProviderError("Identity provider returned a body that is not JSON") from exc
        if not isinstance(data, dict):
            raise IdentityProviderError("Identity provider returned an unexpected body")
        return data

    def _session_from(self, response: Optional[requests.Response]) -> Optional[AuthSession]:
        if response is None:
            return None
        data = self._json(response)
        if not data.get("access_token"):
            return None
        user = data.get("user")
        return AuthSession(
            access_token=str(data["access_token"]),
            refresh_token=str(data.get("refresh_token") or ""),
            user=_to_user(user) if isinstance(user, dict) and user.get("id") else None,
        )

    def verify_token(self, token: str) -> Optional[AuthUser]:
        response = self._request("GET", "/user", token=token)
        if response is None:
            return None
        data = self._json(response)
        if not data.get("id"):
            return None
        return _to_user(data)

    def issue_session(self, email: str, password: str) -> Optional[AuthSession]:
        response = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._session_from(response)

    def refresh_session(self, refresh_token: str) -> Optional[AuthSession]:
        response = self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return self._session_from(response)

    def sign_out(self, access_token: str) -> None:
        response = self._request("POST", "/logout", token=access_token)
        if response is None:
            raise IdentityProviderError("Identity provider refused to sign out the session")


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from ``Authorization: Bearer <token>``, else None."""
    if not authorization or not isinstance(authorization, str):
        return None
    header = authorization.strip()
    if header[: len(BEARER_PREFIX)].lower() != BEARER_PREFIX:
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def credential_for(token: str, user: AuthUser) -> StorageCredential:
    claims = {"sub": user.id, "role": "authenticated"}
    if user.email:
        claims["email"] = user.email
    return StorageCredential(access_token=token, claims=claims)


def verify_bearer(
    authorization: Optional[str], provider: IdentityProvider
) -> Optional[AuthContext]:
    """
    Parse and verify a header. Returns None when no token is present or the
    provider rejects it; provider outages propagate as IdentityProviderError.
    """
    token = parse_bearer_token(authorization)
    if token is None:
        return None
    user = provider.verify_token(token)
    if user is None:
        return None
    return AuthContext(user=user, credential=credential_for(token, user))


def derive_auth_context(
    authorization: Optional[str], provider: Optional[IdentityProvider]
) -> AuthContext:
    if provider is None:
        return UNAUTHENTICATED
    try:
        context = verify_bearer(authorization, provider)
    except IdentityProviderError as exc:
        logger.warning("Treating request as unauthenticated: %s", exc)
        return UNAUTHENTICATED
    return context or UNAUTHENTICATED
