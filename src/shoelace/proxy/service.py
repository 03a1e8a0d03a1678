"""Registering origin URLs and serving them back through the proxy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from opentelemetry import trace

from ..common.metrics import GLOBAL_REGISTRY, Counter
from .address import address
from .errors import EndpointError, NoProxyError, ObjectNotFoundError, UnidentifiableMimeError
from .keystore import Keystore

LOGGER = structlog.get_logger("shoelace.proxy")
TRACER = trace.get_tracer("shoelace.proxy")

STORE_COUNTER = GLOBAL_REGISTRY.register(Counter("shoelace_proxy_stores_total", "Origin URLs registered"))
SERVE_COUNTER = GLOBAL_REGISTRY.register(Counter("shoelace_proxy_serves_total", "Media objects served"))
MISS_COUNTER = GLOBAL_REGISTRY.register(Counter("shoelace_proxy_misses_total", "Lookups for unknown ids"))
ORIGIN_ERRORS_COUNTER = GLOBAL_REGISTRY.register(
    Counter("shoelace_proxy_origin_errors_total", "Failed origin fetches")
)
BYTES_SERVED_COUNTER = GLOBAL_REGISTRY.register(Counter("shoelace_proxy_bytes_served_total", "Bytes proxied"))

SNIFF_BYTES = 4096
MEDIA_TYPE_PREFIXES = ("image/", "video/", "audio/")
# Markup-based image types can carry script; they are never served.
SCRIPTABLE_MEDIA_TYPES = frozenset({"image/svg+xml", "image/svg"})


def sniff_mime(data: bytes) -> Optional[str]:
    """Identify ``data`` as binary media from its leading bytes.

    Only image, video and audio types are accepted. Anything else libmagic
    recognises (HTML, JSON, SVG, archives, plain text) yields ``None``.
    """
    if not data:
        return None
    import magic

    detected = (magic.from_buffer(data[:SNIFF_BYTES], mime=True) or "").strip().lower()
    if not detected.startswith(MEDIA_TYPE_PREFIXES) or detected in SCRIPTABLE_MEDIA_TYPES:
        return None
    return detected


@dataclass
class ProxiedMedia:
    body: bytes
    content_type: str


class MediaProxy:
    """Shared handle over the keystore and the origin HTTP client."""

    def __init__(
        self,
        keystore: Keystore,
        base_url: str,
        http_client: httpx.AsyncClient,
        *,
        log_cdn: bool = False,
    ) -> None:
        self.keystore = keystore
        self.base_url = base_url.rstrip("/")
        self.http = http_client
        self.log_cdn = log_cdn

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/proxy/{key}"

    async def store(self, url: str) -> str:
        """Register ``url`` and return the link clients should use instead.

        With the proxy disabled the origin URL is returned unchanged.
        """
        key = address(url)
        if not self.keystore.enabled:
            return url

        with TRACER.start_as_current_span("proxy.store", attributes={"shoelace.hash": key}):
            await self.keystore.put(key, url)
        STORE_COUNTER.inc()
        if self.log_cdn:
            LOGGER.info("hash_spawned", hash=key, origin=url)
        else:
            LOGGER.info("hash_spawned", hash=key)
        return self.public_url(key)

    async def serve(self, key: str) -> ProxiedMedia:
        if not self.keystore.enabled:
            raise NoProxyError()

        with TRACER.start_as_current_span("proxy.serve", attributes={"shoelace.hash": key}) as span:
            url = await self.keystore.get(key)
            if url is None:
                MISS_COUNTER.inc()
                LOGGER.info("proxy_miss", hash=key)
                raise ObjectNotFoundError()

            body = await self._fetch(key, url)
            content_type = sniff_mime(body)
            if content_type is None:
                LOGGER.warning("unidentifiable_mime", hash=key, bytes=len(body))
                raise UnidentifiableMimeError()

            SERVE_COUNTER.inc()
            BYTES_SERVED_COUNTER.inc(len(body))
            span.set_attribute("shoelace.bytes", len(body))
            span.set_attribute("shoelace.content_type", content_type)
            LOGGER.info("proxy_served", hash=key, content_type=content_type, bytes=len(body))
            return ProxiedMedia(body=body, content_type=content_type)

    async def _fetch(self, key: str, url: str) -> bytes:
        try:
            response = await self.http.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            ORIGIN_ERRORS_COUNTER.inc()
            LOGGER.warning("origin_fetch_failed", hash=key, status=exc.response.status_code)
            raise EndpointError(str(exc), upstream_status=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            ORIGIN_ERRORS_COUNTER.inc()
            LOGGER.warning("origin_fetch_failed", hash=key, error=str(exc))
            raise EndpointError(str(exc)) from exc
        return response.content
