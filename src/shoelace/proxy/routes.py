from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from .service import MediaProxy


def get_proxy(request: Request) -> MediaProxy:
    return request.app.state.shoelace.proxy  # type: ignore[attr-defined]


def build_router() -> APIRouter:
    router = APIRouter(prefix="/proxy")

    @router.get("/{key}")
    async def serve_media(key: str, proxy: MediaProxy = Depends(get_proxy)) -> StreamingResponse:
        media = await proxy.serve(key)
        response = StreamingResponse(iter([media.body]), media_type=media.content_type)
        response.headers["Content-Length"] = str(len(media.body))
        return response

    return router
