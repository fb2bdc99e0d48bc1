"""
CMS routes: text content, blog posts and page configs.

Mutating routes require an authenticated caller. Every user-supplied field
is validated first and sanitized second; the chosen CMSStorage only ever
sees clean values.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from cms_backend.cms_storage import UNKNOWN_AUTHOR, CMSStorage
from cms_backend.dependencies import get_cms_storage, require_auth
from cms_backend.identity import AuthUser
from cms_backend.sanitize import (
    DESCRIPTION_MAX_LENGTH,
    EXCERPT_MAX_LENGTH,
    KEY_MAX_LENGTH,
    SLUG_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    ValidationResult,
    sanitize_plain_text,
    sanitize_rich_text,
    validate_content,
    validate_length,
)
from cms_backend.schemas import (
    BlogPostCreate,
    BlogPostList,
    BlogPostOut,
    BlogPostUpdate,
    MessageResponse,
    PageConfigCreate,
    PageConfigList,
    PageConfigOut,
    PageConfigUpdate,
    TextContentCreate,
    TextContentList,
    TextContentOut,
    TextContentUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cms", tags=["CMS"])

TEXT_NOT_FOUND = "Text content not found"
POST_NOT_FOUND = "Blog post not found"
CONFIG_NOT_FOUND = "Page config not found"


def _check(result: ValidationResult) -> None:
    if not result.is_valid:
        raise HTTPException(status_code=400, detail=result.error)


def _text_content_changes(fields: dict[str, Any]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if "key" in fields:
        _check(validate_length(fields["key"], KEY_MAX_LENGTH, "Key"))
        changes["key"] = fields["key"]
    if "content" in fields:
        _check(validate_content(fields["content"]))
        changes["content"] = sanitize_rich_text(fields["content"])
    return changes


def _blog_post_changes(fields: dict[str, Any]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if "title" in fields:
        _check(validate_length(fields["title"], TITLE_MAX_LENGTH, "Title"))
        changes["title"] = sanitize_plain_text(fields["title"])
    if "slug" in fields:
        _check(validate_length(fields["slug"], SLUG_MAX_LENGTH, "Slug"))
        changes["slug"] = fields["slug"]
    if "content" in fields:
        _check(validate_content(fields["content"]))
        changes["content"] = sanitize_rich_text(fields["content"])
    if "excerpt" in fields:
        excerpt = fields["excerpt"]
        if excerpt is not None:
            _check(validate_length(excerpt, EXCERPT_MAX_LENGTH, "Excerpt"))
            excerpt = sanitize_rich_text(excerpt)
        changes["excerpt"] = excerpt
    if fields.get("published") is not None:
        changes["published"] = bool(fields["published"])
    if "tags" in fields:
        tags = fields["tags"]
        changes["tags"] = (
            [sanitize_plain_text(tag) for tag in tags] if tags is not None else None
        )
    if "featuredImage" in fields:
        image = fields["featuredImage"]
        changes["featured_image"] = sanitize_plain_text(image) if image is not None else None
    return changes


def _page_config_changes(fields: dict[str, Any]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if "pageKey" in fields:
        _check(validate_length(fields["pageKey"], KEY_MAX_LENGTH, "Page key"))
        changes["page_key"] = fields["pageKey"]
    if "title" in fields:
        _check(validate_length(fields["title"], TITLE_MAX_LENGTH, "Title"))
        changes["title"] = sanitize_plain_text(fields["title"])
    if "description" in fields:
        description = fields["description"]
        if description is not None:
            _check(
                validate_length(description, DESCRIPTION_MAX_LENGTH, "Description")
            )
            description = sanitize_plain_text(description)
        changes["description"] = description
    if fields.get("config") is not None:
        changes["config"] = fields["config"]
    return changes


# Text content


@router.post("/text", response_model=TextContentOut)
def create_text_content(
    payload: TextContentCreate,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    fields = _text_content_changes(payload.model_dump())
    record = storage.save_text_content(fields["key"], fields["content"])
    logger.info("Text content %s created by %s", record.id, user.id)
    return record.as_dict()


@router.get("/text", response_model=TextContentList)
def list_text_content(storage: CMSStorage = Depends(get_cms_storage)):
    return {"contents": [record.as_dict() for record in storage.list_text_content()]}


@router.get("/text/key/{key}", response_model=TextContentOut)
def get_text_content_by_key(key: str, storage: CMSStorage = Depends(get_cms_storage)):
    record = storage.get_text_content_by_key(key)
    if not record:
        raise HTTPException(status_code=404, detail=TEXT_NOT_FOUND)
    return record.as_dict()


@router.get("/text/{content_id}", response_model=TextContentOut)
def get_text_content(content_id: str, storage: CMSStorage = Depends(get_cms_storage)):
    record = storage.get_text_content(content_id)
    if not record:
        raise HTTPException(status_code=404, detail=TEXT_NOT_FOUND)
    return record.as_dict()


@router.put("/text/{content_id}", response_model=TextContentOut)
def update_text_content(
    content_id: str,
    payload: TextContentUpdate,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    changes = _text_content_changes(payload.model_dump(exclude_unset=True))
    record = storage.update_text_content(content_id, changes)
    if not record:
        raise HTTPException(status_code=404, detail=TEXT_NOT_FOUND)
    return record.as_dict()


@router.delete("/text/{content_id}", response_model=MessageResponse)
def delete_text_content(
    content_id: str,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    if not storage.delete_text_content(content_id):
        raise HTTPException(status_code=404, detail=TEXT_NOT_FOUND)
    return {"message": "Text content deleted successfully"}


# Blog posts


@router.post("/blog", response_model=BlogPostOut)
def create_blog_post(
    payload: BlogPostCreate,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    fields = _blog_post_changes(payload.model_dump())
    record = storage.save_blog_post(
        title=fields["title"],
        slug=fields["slug"],
        content=fields["content"],
        excerpt=fields.get("excerpt"),
        author_id=user.id or UNKNOWN_AUTHOR,
        published=fields.get("published", False),
        tags=fields.get("tags"),
        featured_image=fields.get("featured_image"),
    )
    logger.info("Blog post %s (%s) created by %s", record.id, record.slug, user.id)
    return record.as_dict()


@router.get("/blog", response_model=BlogPostList)
def list_blog_posts(
    published: Optional[bool] = Query(None),
    storage: CMSStorage = Depends(get_cms_storage),
):
    posts = storage.list_blog_posts(published=published)
    return {"posts": [post.as_dict() for post in posts]}


@router.get("/blog/slug/{slug}", response_model=BlogPostOut)
def get_blog_post_by_slug(slug: str, storage: CMSStorage = Depends(get_cms_storage)):
    record = storage.get_blog_post_by_slug(slug)
    if not record:
        raise HTTPException(status_code=404, detail=POST_NOT_FOUND)
    return record.as_dict()


@router.get("/blog/{post_id}", response_model=BlogPostOut)
def get_blog_post(post_id: str, storage: CMSStorage = Depends(get_cms_storage)):
    record = storage.get_blog_post(post_id)
    if not record:
        raise HTTPException(status_code=404, detail=POST_NOT_FOUND)
    return record.as_dict()


@router.put("/blog/{post_id}", response_model=BlogPostOut)
def update_blog_post(
    post_id: str,
    payload: BlogPostUpdate,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    changes = _blog_post_changes(payload.model_dump(exclude_unset=True))
    record = storage.update_blog_post(post_id, changes)
    if not record:
        raise HTTPException(status_code=404, detail=POST_NOT_FOUND)
    return record.as_dict()


@router.delete("/blog/{post_id}", response_model=MessageResponse)
def delete_blog_post(
    post_id: str,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    if not storage.delete_blog_post(post_id):
        raise HTTPException(status_code=404, detail=POST_NOT_FOUND)
    return {"message": "Blog post deleted successfully"}


# Page configs


@router.post("/page-config", response_model=PageConfigOut)
def create_page_config(
    payload: PageConfigCreate,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    fields = _page_config_changes(payload.model_dump())
    record = storage.save_page_config(
        page_key=fields["page_key"],
        title=fields["title"],
        description=fields.get("description"),
        config=fields["config"],
    )
    return record.as_dict()


@router.get("/page-config", response_model=PageConfigList)
def list_page_configs(storage: CMSStorage = Depends(get_cms_storage)):
    return {"configs": [record.as_dict() for record in storage.list_page_configs()]}


@router.get("/page-config/key/{page_key}", response_model=PageConfigOut)
def get_page_config_by_key(
    page_key: str, storage: CMSStorage = Depends(get_cms_storage)
):
    record = storage.get_page_config_by_key(page_key)
    if not record:
        raise HTTPException(status_code=404, detail=CONFIG_NOT_FOUND)
    return record.as_dict()


@router.get("/page-config/{config_id}", response_model=PageConfigOut)
def get_page_config(config_id: str, storage: CMSStorage = Depends(get_cms_storage)):
    record = storage.get_page_config(config_id)
    if not record:
        raise HTTPException(status_code=404, detail=CONFIG_NOT_FOUND)
    return record.as_dict()


@router.put("/page-config/{config_id}", response_model=PageConfigOut)
def update_page_config(
    config_id: str,
    payload: PageConfigUpdate,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    changes = _page_config_changes(payload.model_dump(exclude_unset=True))
    record = storage.update_page_config(config_id, changes)
    if not record:
        raise HTTPException(status_code=404, detail=CONFIG_NOT_FOUND)
    return record.as_dict()


@router.delete("/page-config/{config_id}", response_model=MessageResponse)
def delete_page_config(
    config_id: str,
    user: AuthUser = Depends(require_auth),
    storage: CMSStorage = Depends(get_cms_storage),
):
    if not storage.delete_page_config(config_id):
        raise HTTPException(status_code=404, detail=CONFIG_NOT_FOUND)
    return {"message": "Page config deleted successfully"}
