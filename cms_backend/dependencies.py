"""
Dependency wiring for the FastAPI app.

Backends are built once in ``create_app`` and kept on ``app.state``; the
functions here only read them back, so tests can hand ``create_app`` their
own settings, identity provider or stores.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, Request

from cms_backend.cms_storage import CMSStorage, InMemoryCMSStorage
from cms_backend.config import Settings
from cms_backend.db import Database, SqlCMSStorage, StorageCredential
from cms_backend.errors import (
    BackendUnavailableError,
    IdentityProviderError,
    UnauthorizedError,
)
from cms_backend.identity import (
    AuthContext,
    AuthUser,
    GoTrueIdentityProvider,
    IdentityProvider,
    derive_auth_context,
    parse_bearer_token,
    verify_bearer,
)
from cms_backend.storage import ImageStore, InMemoryImageStore, S3ImageStore

logger = logging.getLogger(__name__)

AUTH_NOT_CONFIGURED = "Authentication service not available. Identity provider not configured."
MISSING_TOKEN = (
    "Unauthorized. Please provide a valid JWT token in the Authorization header."
)
INVALID_TOKEN = "Unauthorized. Invalid or expired token."


class BackendSelector:
    """
    Picks the CMS storage for a request:

    1. database configured and caller credential present -> SQL, scoped to caller
    2. database configured, no credential -> SQL with the service connection
    3. no database -> the process-wide in-memory store
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        memory_storage: Optional[InMemoryCMSStorage] = None,
    ):
        self.database = database
        self.memory_storage = memory_storage or InMemoryCMSStorage()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackendSelector":
        if settings.use_in_memory_backends or not settings.database_url:
            return cls()
        # A configured database that cannot be built is an error, never a
        # silent switch to in-memory storage.
        database = Database(
            settings.database_url, pool_timeout=settings.db_pool_timeout_seconds
        )
        return cls(database=database)

    @property
    def durable_configured(self) -> bool:
        return self.database is not None

    @property
    def backend_name(self) -> str:
        return "database" if self.durable_configured else "in-memory"

    def select(self, credential: Optional[StorageCredential] = None) -> CMSStorage:
        if self.database is not None and credential is not None:
            return SqlCMSStorage(self.database, credential)
        if self.database is not None:
            return SqlCMSStorage(self.database)
        return self.memory_storage


def build_identity_provider(settings: Settings) -> Optional[IdentityProvider]:
    if not settings.identity_configured:
        logger.warning(
            "Identity provider credentials not found. Set SUPABASE_URL and "
            "SUPABASE_ANON_KEY to enable authentication."
        )
        return None
    return GoTrueIdentityProvider(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout=settings.identity_timeout_seconds,
    )


def build_image_store(settings: Settings) -> ImageStore:
    if settings.use_in_memory_backends or not settings.s3_bucket:
        return InMemoryImageStore()
    return S3ImageStore(
        bucket=settings.s3_bucket,
        region=settings.s3_region or "",
        endpoint=settings.s3_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
    )


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_backend_selector(request: Request) -> BackendSelector:
    return request.app.state.backend_selector


def get_identity_provider(request: Request) -> Optional[IdentityProvider]:
    return request.app.state.identity_provider


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store


def get_auth_context(
    authorization: Optional[str] = Header(default=None),
    provider: Optional[IdentityProvider] = Depends(get_identity_provider),
) -> AuthContext:
    return derive_auth_context(authorization, provider)


def get_cms_storage(
    selector: BackendSelector = Depends(get_backend_selector),
    context: AuthContext = Depends(get_auth_context),
) -> CMSStorage:
    return selector.select(context.credential)


def require_auth(
    authorization: Optional[str] = Header(default=None),
    context: AuthContext = Depends(get_auth_context),
    provider: Optional[IdentityProvider] = Depends(get_identity_provider),
) -> AuthUser:
    """Guard for mutating routes: returns the caller or rejects the request."""
    if context.user is not None:
        return context.user
    if provider is None:
        raise BackendUnavailableError(AUTH_NOT_CONFIGURED)
    if parse_bearer_token(authorization) is None:
        raise UnauthorizedError(MISSING_TOKEN)
    try:
        verified = verify_bearer(authorization, provider)
    except IdentityProviderError as exc:
        logger.warning("Token verification failed: %s", exc)
        verified = None
    if verified is None:
        raise UnauthorizedError(INVALID_TOKEN)
    return verified.user
