"""
Durable CMS storage on a relational database via SQLAlchemy.

Postgres (e.g. Supabase) is expected in production; any SQLAlchemy URL works,
and the tests use SQLite. When a caller's credential is attached, each
transaction publishes the JWT claims and role the way PostgREST does, so
row-level security policies see the caller instead of the service role.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    String,
    Text,
    create_engine,
    delete,
    select,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from cms_backend.cms_storage import (
    BLOG_POST_FIELDS,
    PAGE_CONFIG_FIELDS,
    TEXT_CONTENT_FIELDS,
    UNKNOWN_AUTHOR,
    BlogPost,
    PageConfig,
    TextContent,
    check_changes,
    new_id,
    utcnow,
)
from cms_backend.errors import BackendUnavailableError, ConflictError

logger = logging.getLogger(__name__)

Base = declarative_base()

TagList = JSON().with_variant(ARRAY(Text), "postgresql")
ConfigDocument = JSON().with_variant(JSONB(), "postgresql")


class TextContentRow(Base):
    __tablename__ = "text_content"

    id = Column(String(36), primary_key=True)
    key = Column(Text, nullable=False, unique=True, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class BlogPostRow(Base):
    __tablename__ = "blog_posts"

    id = Column(String(36), primary_key=True)
    title = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True, index=True)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    author_id = Column(Text, nullable=False)
    published = Column(Boolean, nullable=False, default=False, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    tags = Column(TagList, nullable=True)
    featured_image = Column(Text, nullable=True)


class PageConfigRow(Base):
    __tablename__ = "page_configs"

    id = Column(String(36), primary_key=True)
    page_key = Column(Text, nullable=False, unique=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    config = Column(ConfigDocument, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


@dataclass(frozen=True)
class StorageCredential:
    """A caller's access token plus the claims row-level security checks."""

    access_token: str
    claims: Dict[str, Any] = field(default_factory=dict)
    role: str = "authenticated"


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_text_content(row: TextContentRow) -> TextContent:
    return TextContent(
        id=row.id,
        key=row.key,
        content=row.content,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _to_blog_post(row: BlogPostRow) -> BlogPost:
    return BlogPost(
        id=row.id,
        title=row.title,
        slug=row.slug,
        content=row.content,
        excerpt=row.excerpt,
        author_id=row.author_id,
        published=bool(row.published),
        published_at=_aware(row.published_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        tags=list(row.tags) if row.tags is not None else None,
        featured_image=row.featured_image,
    )


def _to_page_config(row: PageConfigRow) -> PageConfig:
    return PageConfig(
        id=row.id,
        page_key=row.page_key,
        title=row.title,
        description=row.description,
        config=dict(row.config or {}),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class Database:
    """
    Engine and session factory shared by every request.

    Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, *, pool_timeout: float = 10.0):
        if not database_url:
            raise BackendUnavailableError("DATABASE_URL is required for the database backend")
        engine_kwargs: Dict[str, Any] = {"future": True, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(pool_recycle=1800, pool_timeout=pool_timeout)
        try:
            self.engine = create_engine(database_url, **engine_kwargs)
        except (ImportError, SQLAlchemyError) as exc:
            raise BackendUnavailableError(f"Cannot configure database: {exc}") from exc
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    @property
    def is_postgres(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def check_connection(self) -> bool:
        """Ping the database and log the outcome."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("select 1"))
        except SQLAlchemyError as exc:
            logger.error("Database: connection test failed: %s", exc)
            return False
        logger.info("Database: connected (%s)", self.engine.dialect.name)
        return True

    def apply_credential(self, session: Session, credential: StorageCredential) -> None:
        if not self.is_postgres:
            return
        session.execute(
            text(
                "select set_config('request.jwt.claims', :claims, true), "
                "set_config('role', :role, true)"
            ),
            {"claims": json.dumps(credential.claims), "role": credential.role},
        )


def locked_row(model, record_id: str):
    """Select one row by id, locked until the transaction ends (FOR UPDATE)."""
    return select(model).where(model.id == record_id).with_for_update()


class SqlCMSStorage:
    """CMSStorage backed by ``Database``, optionally scoped to a caller."""

    def __init__(self, database: Database, credential: Optional[StorageCredential] = None):
        self.database = database
        self.credential = credential

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self.database.Session() as session, session.begin():
            if self.credential is not None:
                self.database.apply_credential(session, self.credential)
            yield session

    def _insert(self, row: Base, label: str) -> Base:
        try:
            with self._session() as session:
                session.add(row)
                session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Failed to save {label}: {exc.orig}") from exc
        return row

    def _update(self, model, record_id: str, updates: Dict[str, Any], label: str, hook=None):
        try:
            with self._session() as session:
                row = session.execute(locked_row(model, record_id)).scalar_one_or_none()
                if row is None:
                    return None
                now = utcnow()
                if hook:
                    hook(row, updates, now)
                for name, value in updates.items():
                    setattr(row, name, value)
                row.updated_at = now
                session.flush()
                return row
        except IntegrityError as exc:
            raise ConflictError(f"Failed to update {label}: {exc.orig}") from exc

    def _delete(self, model, record_id: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(model).where(model.id == record_id))
            return (result.rowcount or 0) > 0

    def _get(self, model, record_id: str):
        with self._session() as session:
            return session.get(model, record_id)

    def _get_by(self, column, value: str):
        with self._session() as session:
            stmt = select(column.class_).where(column == value).limit(1)
            return session.execute(stmt).scalar_one_or_none()

    def _list(self, model, *criteria) -> list:
        with self._session() as session:
            stmt = select(model).where(*criteria).order_by(model.created_at.desc())
            return list(session.execute(stmt).scalars())

    # Text content

    def save_text_content(self, key: str, content: str) -> TextContent:
        now = utcnow()
        row = TextContentRow(
            id=new_id(), key=key, content=content, created_at=now, updated_at=now
        )
        return _to_text_content(self._insert(row, "text content"))

    def get_text_content(self, content_id: str) -> Optional[TextContent]:
        row = self._get(TextContentRow, content_id)
        return _to_text_content(row) if row else None

    def get_text_content_by_key(self, key: str) -> Optional[TextContent]:
        row = self._get_by(TextContentRow.key, key)
        return _to_text_content(row) if row else None

    def list_text_content(self) -> List[TextContent]:
        return [_to_text_content(row) for row in self._list(TextContentRow)]

    def update_text_content(
        self, content_id: str, changes: Mapping[str, Any]
    ) -> Optional[TextContent]:
        updates = check_changes(changes, TEXT_CONTENT_FIELDS)
        row = self._update(TextContentRow, content_id, updates, "text content")
        return _to_text_content(row) if row else None

    def delete_text_content(self, content_id: str) -> bool:
        return self._delete(TextContentRow, content_id)

    # Blog posts

    def save_blog_post(
        self,
        *,
        title: str,
        slug: str,
        content: str,
        author_id: str = UNKNOWN_AUTHOR,
        excerpt: Optional[str] = None,
        published: bool = False,
        published_at: Optional[datetime] = None,
        tags: Optional[List[str]] = None,
        featured_image: Optional[str] = None,
    ) -> BlogPost:
        now = utcnow()
        row = BlogPostRow(
            id=new_id(),
            title=title,
            slug=slug,
            content=content,
            excerpt=excerpt,
            author_id=author_id,
            published=published,
            published_at=published_at or (now if published else None),
            tags=list(tags) if tags is not None else None,
            featured_image=featured_image,
            created_at=now,
            updated_at=now,
        )
        return _to_blog_post(self._insert(row, "blog post"))

    def get_blog_post(self, post_id: str) -> Optional[BlogPost]:
        row = self._get(BlogPostRow, post_id)
        return _to_blog_post(row) if row else None

    def get_blog_post_by_slug(self, slug: str) -> Optional[BlogPost]:
        row = self._get_by(BlogPostRow.slug, slug)
        return _to_blog_post(row) if row else None

    def list_blog_posts(self, published: Optional[bool] = None) -> List[BlogPost]:
        criteria = []
        if published is not None:
            criteria.append(BlogPostRow.published == published)
        return [_to_blog_post(row) for row in self._list(BlogPostRow, *criteria)]

    def update_blog_post(
        self, post_id: str, changes: Mapping[str, Any]
    ) -> Optional[BlogPost]:
        updates = check_changes(changes, BLOG_POST_FIELDS)

        def first_publish(row: BlogPostRow, updates: Dict[str, Any], now: datetime) -> None:
            # Read and write in the same transaction; published_at is set once.
            if updates.get("published") and row.published_at is None:
                updates["published_at"] = now

        row = self._update(BlogPostRow, post_id, updates, "blog post", hook=first_publish)
        return _to_blog_post(row) if row else None

    def delete_blog_post(self, post_id: str) -> bool:
        return self._delete(BlogPostRow, post_id)

    # Page configs

    def save_page_config(
        self,
        *,
        page_key: str,
        title: str,
        config: Dict[str, Any],
        description: Optional[str] = None,
    ) -> PageConfig:
        now = utcnow()
        row = PageConfigRow(
            id=new_id(),
            page_key=page_key,
            title=title,
            description=description,
            config=dict(config),
            created_at=now,
            updated_at=now,
        )
        return _to_page_config(self._insert(row, "page config"))

    def get_page_config(self, config_id: str) -> Optional[PageConfig]:
        row = self._get(PageConfigRow, config_id)
        return _to_page_config(row) if row else None

    def get_page_config_by_key(self, page_key: str) -> Optional[PageConfig]:
        row = self._get_by(PageConfigRow.page_key, page_key)
        return _to_page_config(row) if row else None

    def list_page_configs(self) -> List[PageConfig]:
        return [_to_page_config(row) for row in self._list(PageConfigRow)]

    def update_page_config(
        self, config_id: str, changes: Mapping[str, Any]
    ) -> Optional[PageConfig]:
        updates = check_changes(changes, PAGE_CONFIG_FIELDS)
        row = self._update(PageConfigRow, config_id, updates, "page config")
        return _to_page_config(row) if row else None

    def delete_page_config(self, config_id: str) -> bool:
        return self._delete(PageConfigRow, config_id)
