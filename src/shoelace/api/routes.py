"""JSON API returning provider value trees with proxied media."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import structlog

from .provider import ContentProvider
from .rewriter import MediaRewriter

LOGGER = structlog.get_logger("shoelace.api")


def get_provider(request: Request) -> ContentProvider:
    return request.app.state.shoelace.provider  # type: ignore[attr-defined]


def get_rewriter(request: Request) -> MediaRewriter:
    return request.app.state.shoelace.rewriter  # type: ignore[attr-defined]


def build_router() -> APIRouter:
    router = APIRouter(prefix="/api/v1")

    @router.get("/user/{tag}")
    async def user(
        tag: str,
        provider: ContentProvider = Depends(get_provider),
        rewriter: MediaRewriter = Depends(get_rewriter),
    ) -> JSONResponse:
        fetched = await provider.fetch_user(tag)
        rewritten = await rewriter.rewrite_user(fetched)
        LOGGER.info("user_served", tag=tag, posts=len(rewritten.posts))
        return JSONResponse(rewritten.model_dump(mode="json"))

    @router.get("/post/{post_id}")
    async def post(
        post_id: str,
        provider: ContentProvider = Depends(get_provider),
        rewriter: MediaRewriter = Depends(get_rewriter),
    ) -> JSONResponse:
        fetched = await provider.fetch_post(post_id)
        rewritten = await rewriter.rewrite_post(fetched)
        LOGGER.info("post_served", post_id=post_id, replies=len(rewritten.replies))
        return JSONResponse(rewritten.model_dump(mode="json"))

    return router
