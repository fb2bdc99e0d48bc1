"""
Pydantic schemas for the CMS API.

Field names follow the JSON the API speaks (camelCase), as the frontend
expects.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, EmailStr


class TextContentCreate(BaseModel):
    key: str
    content: str


class TextContentUpdate(BaseModel):
    key: Optional[str] = None
    content: Optional[str] = None


class TextContentOut(BaseModel):
    id: str
    key: str
    content: str
    createdAt: str
    updatedAt: str


class TextContentList(BaseModel):
    contents: list[TextContentOut]


class BlogPostCreate(BaseModel):
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    published: Optional[bool] = None
    tags: Optional[list[str]] = None
    featuredImage: Optional[str] = None


class BlogPostUpdate(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None
    published: Optional[bool] = None
    tags: Optional[list[str]] = None
    featuredImage: Optional[str] = None


class BlogPostOut(BaseModel):
    id: str
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    authorId: str
    published: bool
    publishedAt: Optional[str] = None
    createdAt: str
    updatedAt: str
    tags: Optional[list[str]] = None
    featuredImage: Optional[str] = None


class BlogPostList(BaseModel):
    posts: list[BlogPostOut]


class PageConfigCreate(BaseModel):
    pageKey: str
    title: str
    description: Optional[str] = None
    config: dict[str, Any]


class PageConfigUpdate(BaseModel):
    pageKey: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    config: Optional[dict[str, Any]] = None


class PageConfigOut(BaseModel):
    id: str
    pageKey: str
    title: str
    description: Optional[str] = None
    config: dict[str, Any]
    createdAt: str
    updatedAt: str


class PageConfigList(BaseModel):
    configs: list[PageConfigOut]


class MessageResponse(BaseModel):
    message: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    message: str
    token: str
    refreshToken: str
    user: dict[str, Any]


class RefreshRequest(BaseModel):
    refreshToken: str


class RefreshResponse(BaseModel):
    message: str
    token: str
    refreshToken: str


class UploadResponse(BaseModel):
    message: str
    filename: str


class ImageListResponse(BaseModel):
    images: list[str]
    count: int
