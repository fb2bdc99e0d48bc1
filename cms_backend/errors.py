"""
Error taxonomy shared by storage, identity and routes.

Validation failures and missing entities are not exceptions: validators
return a ``ValidationResult`` and storage lookups return ``None``/``False``.
"""

from __future__ import annotations


class CMSError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConflictError(CMSError):
    """A natural key (key, slug, page_key) already exists."""

    status_code = 409


class BackendUnavailableError(CMSError):
    """A backend expected by configuration is missing or unreachable."""

    status_code = 503


class UnauthorizedError(CMSError):
    """The request carries no valid identity."""

    status_code = 401


class IdentityProviderError(CMSError):
    """The identity provider could not be reached or answered with a server error."""

    status_code = 502
