"""
CMS storage contract, entity records and the in-memory implementation.

The durable SQLAlchemy implementation lives in ``cms_backend.db``; both satisfy
``CMSStorage`` and are picked per request by ``BackendSelector``.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

TEXT_CONTENT_FIELDS = frozenset({"key", "content"})
BLOG_POST_FIELDS = frozenset(
    {
        "title",
        "slug",
        "content",
        "excerpt",
        "author_id",
        "published",
        "tags",
        "featured_image",
    }
)
PAGE_CONFIG_FIELDS = frozenset({"page_key", "title", "description", "config"})

UNKNOWN_AUTHOR = "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def check_changes(changes: Mapping[str, Any], allowed: frozenset) -> Dict[str, Any]:
    """Return a plain dict of changes, rejecting fields that are not updatable."""
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    return dict(changes)


@dataclass
class TextContent:
    id: str
    key: str
    content: str
    created_at: datetime
    updated_at: datetime

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "content": self.content,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class BlogPost:
    id: str
    title: str
    slug: str
    content: str
    author_id: str
    created_at: datetime
    updated_at: datetime
    published: bool = False
    published_at: Optional[datetime] = None
    excerpt: Optional[str] = None
    tags: Optional[List[str]] = None
    featured_image: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "content": self.content,
            "excerpt": self.excerpt,
            "authorId": self.author_id,
            "published": self.published,
            "publishedAt": _iso(self.published_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "tags": list(self.tags) if self.tags is not None else None,
            "featuredImage": self.featured_image,
        }


@dataclass
class PageConfig:
    id: str
    page_key: str
    title: str
    created_at: datetime
    updated_at: datetime
    config: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "pageKey": self.page_key,
            "title": self.title,
            "description": self.description,
            "config": self.config,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class CMSStorage(Protocol):
    """Operations the CMS routes need from a storage backend."""

    # Text content
    def save_text_content(self, key: str, content: str) -> TextContent:
        ...

    def get_text_content(self, content_id: str) -> Optional[TextContent]:
        ...

    def get_text_content_by_key(self, key: str) -> Optional[TextContent]:
        ...

    def list_text_content(self) -> List[TextContent]:
        ...

    def update_text_content(
        self, content_id: str, changes: Mapping[str, Any]
    ) -> Optional[TextContent]:
        ...

    def delete_text_content(self, content_id: str) -> bool:
        ...

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
        ...

    def get_blog_post(self, post_id: str) -> Optional[BlogPost]:
        ...

    def get_blog_post_by_slug(self, slug: str) -> Optional[BlogPost]:
        ...

    def list_blog_posts(self, published: Optional[bool] = None) -> List[BlogPost]:
        ...

    def update_blog_post(
        self, post_id: str, changes: Mapping[str, Any]
    ) -> Optional[BlogPost]:
        ...

    def delete_blog_post(self, post_id: str) -> bool:
        ...

    # Page configs
    def save_page_config(
        self,
        *,
        page_key: str,
        title: str,
        config: Dict[str, Any],
        description: Optional[str] = None,
    ) -> PageConfig:
        ...

    def get_page_config(self, config_id: str) -> Optional[PageConfig]:
        ...

    def get_page_config_by_key(self, page_key: str) -> Optional[PageConfig]:
        ...

    def list_page_configs(self) -> List[PageConfig]:
        ...

    def update_page_config(
        self, config_id: str, changes: Mapping[str, Any]
    ) -> Optional[PageConfig]:
        ...

    def delete_page_config(self, config_id: str) -> bool:
        ...


class InMemoryCMSStorage:
    """
    Process-local storage for development and tests.

    Routes run in FastAPI's thread pool, so every access goes through a lock.
    Natural-key uniqueness is not enforced here.
    """

    def __init__(self):
        self.text_content: Dict[str, TextContent] = {}
        self.blog_posts: Dict[str, BlogPost] = {}
        self.page_configs: Dict[str, PageConfig] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.text_content.clear()
            self.blog_posts.clear()
            self.page_configs.clear()

    # Text content

    def save_text_content(self, key: str, content: str) -> TextContent:
        now = utcnow()
        record = TextContent(
            id=new_id(), key=key, content=content, created_at=now, updated_at=now
        )
        with self._lock:
            self.text_content[record.id] = record
        return record

    def get_text_content(self, content_id: str) -> Optional[TextContent]:
        with self._lock:
            return self.text_content.get(content_id)

    def get_text_content_by_key(self, key: str) -> Optional[TextContent]:
        with self._lock:
            for record in self.text_content.values():
                if record.key == key:
                    return record
        return None

    def list_text_content(self) -> List[TextContent]:
        with self._lock:
            return list(self.text_content.values())

    def update_text_content(
        self, content_id: str, changes: Mapping[str, Any]
    ) -> Optional[TextContent]:
        updates = check_changes(changes, TEXT_CONTENT_FIELDS)
        with self._lock:
            existing = self.text_content.get(content_id)
            if not existing:
                return None
            updated = replace(existing, **updates, updated_at=utcnow())
            self.text_content[content_id] = updated
            return updated

    def delete_text_content(self, content_id: str) -> bool:
        with self._lock:
            return self.text_content.pop(content_id, None) is not None

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
        record = BlogPost(
            id=new_id(),
            title=title,
            slug=slug,
            content=content,
            author_id=author_id,
            excerpt=excerpt,
            published=published,
            published_at=published_at or (now if published else None),
            tags=list(tags) if tags is not None else None,
            featured_image=featured_image,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.blog_posts[record.id] = record
        return record

    def get_blog_post(self, post_id: str) -> Optional[BlogPost]:
        with self._lock:
            return self.blog_posts.get(post_id)

    def get_blog_post_by_slug(self, slug: str) -> Optional[BlogPost]:
        with self._lock:
            for post in self.blog_posts.values():
                if post.slug == slug:
                    return post
        return None

    def list_blog_posts(self, published: Optional[bool] = None) -> List[BlogPost]:
        with self._lock:
            posts = list(self.blog_posts.values())
        if published is not None:
            posts = [post for post in posts if post.published == published]
        return posts

    def update_blog_post(
        self, post_id: str, changes: Mapping[str, Any]
    ) -> Optional[BlogPost]:
        updates = check_changes(changes, BLOG_POST_FIELDS)
        if updates.get("tags") is not None:
            updates["tags"] = list(updates["tags"])
        with self._lock:
            existing = self.blog_posts.get(post_id)
            if not existing:
                return None
            now = utcnow()
            # published_at is assigned once, on the first publish.
            if updates.get("published") and existing.published_at is None:
                updates["published_at"] = now
            updated = replace(existing, **updates, updated_at=now)
            self.blog_posts[post_id] = updated
            return updated

    def delete_blog_post(self, post_id: str) -> bool:
        with self._lock:
            return self.blog_posts.pop(post_id, None) is not None

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
        record = PageConfig(
            id=new_id(),
            page_key=page_key,
            title=title,
            description=description,
            config=dict(config),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.page_configs[record.id] = record
        return record

    def get_page_config(self, config_id: str) -> Optional[PageConfig]:
        with self._lock:
            return self.page_configs.get(config_id)

    def get_page_config_by_key(self, page_key: str) -> Optional[PageConfig]:
        with self._lock:
            for record in self.page_configs.values():
                if record.page_key == page_key:
                    return record
        return None

    def list_page_configs(self) -> List[PageConfig]:
        with self._lock:
            return list(self.page_configs.values())

    def update_page_config(
        self, config_id: str, changes: Mapping[str, Any]
    ) -> Optional[PageConfig]:
        updates = check_changes(changes, PAGE_CONFIG_FIELDS)
        with self._lock:
            existing = self.page_configs.get(config_id)
            if not existing:
                return None
            updated = replace(existing, **updates, updated_at=utcnow())
            self.page_configs[config_id] = updated
            return updated

    def delete_page_config(self, config_id: str) -> bool:
        with self._lock:
            return self.page_configs.pop(config_id, None) is not None
