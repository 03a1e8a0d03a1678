"""Rewrites every media reference in a value tree to go through the proxy.

Every distinct author and media item in the tree is handled as its own task.
Providers may share one ``Author`` or ``Media`` instance between several
posts, so items are collected by identity first and each is rewritten once.
Sibling tasks always run to completion; once they are joined, the first hard
failure (profile picture or media content) is raised and the tree is
discarded. Thumbnail failures are soft: the origin thumbnail URL is kept.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterable, TypeVar

import structlog
from opentelemetry import trace

from ..common.schemas import Author, Media, Post, Subpost, User
from ..proxy.errors import ProxyError
from ..proxy.service import MediaProxy

LOGGER = structlog.get_logger("shoelace.rewriter")
TRACER = trace.get_tracer("shoelace.rewriter")

T = TypeVar("T")


async def join(tasks: Iterable[Awaitable[object]]) -> None:
    """Wait for every task, then re-raise the first failure."""
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result


def distinct(items: Iterable[T]) -> list[T]:
    """Drop repeated references to the same object, keeping first-seen order."""
    seen: dict[int, T] = {}
    for item in items:
        seen.setdefault(id(item), item)
    return list(seen.values())


class MediaRewriter:
    def __init__(self, proxy: MediaProxy) -> None:
        self.proxy = proxy

    async def rewrite_user(self, user: User) -> User:
        with TRACER.start_as_current_span("rewriter.user", attributes={"shoelace.posts": len(user.posts)}):
            user.pfp = await self.proxy.store(user.pfp)
            await self._rewrite_subposts(user.posts)
        return user

    async def rewrite_post(self, post: Post) -> Post:
        with TRACER.start_as_current_span(
            "rewriter.post",
            attributes={"shoelace.parents": len(post.parents), "shoelace.replies": len(post.replies)},
        ):
            subs = [*post.parents, *post.replies]
            await self._rewrite(
                [post.author, *(sub.author for sub in subs)],
                [*post.media, *(item for sub in subs for item in sub.media)],
            )
        return post

    async def rewrite_subpost(self, sub: Subpost) -> Subpost:
        await self._rewrite_subposts([sub])
        return sub

    async def _rewrite_subposts(self, subs: list[Subpost]) -> None:
        await self._rewrite(
            (sub.author for sub in subs),
            (item for sub in subs for item in sub.media),
        )

    async def _rewrite(self, authors: Iterable[Author], media: Iterable[Media]) -> None:
        await join(
            [
                *(self.rewrite_author(author) for author in distinct(authors)),
                *(self.rewrite_media(item) for item in distinct(media)),
            ]
        )

    async def rewrite_author(self, author: Author) -> None:
        author.pfp = await self.proxy.store(author.pfp)

    async def rewrite_media(self, media: Media) -> None:
        media.content = await self.proxy.store(media.content)
        if media.thumbnail is None:
            return
        try:
            media.thumbnail = await self.proxy.store(media.thumbnail)
        except ProxyError as exc:
            LOGGER.warning("thumbnail_proxy_failed", error=str(exc))
