"""
Backend package for the CMS API.

This package provides a FastAPI application with content storage,
sanitization and identity abstractions so the same routes can run against
a Postgres backend in production or in-memory state during development.
"""
