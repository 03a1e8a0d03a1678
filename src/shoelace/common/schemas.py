"""Value trees returned by the content provider and served by the API."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class Media(BaseModel):
    """A single image or video attached to a post."""

    kind: Literal["image", "video"] = "image"
    content: str
    thumbnail: Optional[str] = None
    alt: Optional[str] = None


class Author(BaseModel):
    username: str
    pfp: str


class Subpost(BaseModel):
    """A post as it appears inside another tree (user timeline, parent, reply)."""

    code: str
    author: Author
    date: Optional[int] = None
    body: str = ""
    media: list[Media] = Field(default_factory=list)
    likes: int = 0


class Post(BaseModel):
    """A fully fetched post with its thread context."""

    id: str
    author: Author
    date: Optional[int] = None
    body: str = ""
    media: list[Media] = Field(default_factory=list)
    likes: int = 0
    parents: list[Subpost] = Field(default_factory=list)
    replies: list[Subpost] = Field(default_factory=list)


class User(BaseModel):
    name: str
    username: str
    pfp: str
    verified: bool = False
    bio: str = ""
    followers: int = 0
    links: list[str] = Field(default_factory=list)
    posts: list[Subpost] = Field(default_factory=list)
