"""Keystores mapping content addresses to origin URLs.

Exactly one backend is active per process. The set of backends is closed:
``put``/``get`` branch on :class:`Backend` instead of dispatching through
subclasses, and the selection never changes after :meth:`Keystore.connect`.

The internal backend keeps every entry for the lifetime of the process. There
is no eviction.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import structlog
from redis.asyncio import Redis, from_url as redis_from_url
from redis.exceptions import RedisError
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError

from ..common.settings import Backend, ShoelaceSettings
from .errors import InvalidKeystoreConfig, KeystoreError

LOGGER = structlog.get_logger("shoelace.keystore")


def describe_redis_uri(uri: str) -> str:
    """Render a Redis URI for logs without credentials."""
    parsed = urlparse(uri)
    if parsed.scheme == "unix":
        return f"redis+unix://{parsed.path}"
    host = parsed.hostname or "localhost"
    port = parsed.port or 6379
    suffix = " (TLS)" if parsed.scheme == "rediss" else ""
    return f"redis://{host}:{port}{suffix}"


def create_keystore_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.drivername.startswith("sqlite") and url.database:
        db_path = Path(url.database).expanduser()
        if not db_path.is_absolute():
            db_path = (Path.cwd() / db_path).resolve()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = url.set(database=db_path.as_posix())
        database_url = url.render_as_string(hide_password=False)
    return create_engine(database_url, future=True, pool_pre_ping=True)


class Keystore:
    def __init__(
        self,
        backend: Backend,
        *,
        redis: Optional[Redis] = None,
        engine: Optional[Engine] = None,
    ) -> None:
        self.backend = backend
        self._entries: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._redis = redis
        self._engine = engine

    @classmethod
    def disabled(cls) -> "Keystore":
        return cls(Backend.NONE)

    @classmethod
    def in_memory(cls) -> "Keystore":
        return cls(Backend.INTERNAL)

    @classmethod
    async def connect(cls, settings: ShoelaceSettings) -> "Keystore":
        """Build the configured keystore, failing fast on bad configuration."""
        backend = settings.proxy_backend
        if backend is Backend.REDIS:
            if not settings.redis_uri:
                raise InvalidKeystoreConfig(backend.value)
            try:
                redis = redis_from_url(settings.redis_uri, decode_responses=True)
            except ValueError as exc:
                raise KeystoreError(f"malformed redis uri: {exc}", backend=backend.value) from exc
            try:
                await redis.ping()
            except RedisError as exc:
                await redis.aclose()
                raise KeystoreError(str(exc), backend=backend.value) from exc
            keystore = cls(backend, redis=redis)
            LOGGER.info("keystore_connected", backend=backend.value, address=describe_redis_uri(settings.redis_uri))
        elif backend is Backend.PERSISTENT:
            if not settings.keystore_database_url:
                raise InvalidKeystoreConfig(backend.value)
            try:
                engine = create_keystore_engine(settings.keystore_database_url)
                await asyncio.to_thread(_initialise_schema, engine)
            except (SQLAlchemyError, OSError) as exc:
                raise KeystoreError(str(exc), backend=backend.value) from exc
            keystore = cls(backend, engine=engine)
            LOGGER.info("keystore_connected", backend=backend.value, address=engine.url.render_as_string())
        elif backend is Backend.INTERNAL:
            keystore = cls.in_memory()
            LOGGER.info("keystore_connected", backend=backend.value)
        else:
            keystore = cls.disabled()
            LOGGER.warning("keystore_disabled", detail="No keystore backend. Proxy has been disabled")
        return keystore

    @property
    def enabled(self) -> bool:
        return self.backend is not Backend.NONE

    async def put(self, key: str, url: str) -> None:
        if self.backend is Backend.INTERNAL:
            async with self._lock:
                self._entries[key] = url
        elif self.backend is Backend.REDIS:
            try:
                await self._redis.set(key, url)
            except RedisError as exc:
                raise KeystoreError(str(exc), backend=self.backend.value) from exc
        elif self.backend is Backend.PERSISTENT:
            try:
                await asyncio.to_thread(_upsert_entry, self._engine, key, url)
            except SQLAlchemyError as exc:
                raise KeystoreError(str(exc), backend=self.backend.value) from exc

    async def get(self, key: str) -> Optional[str]:
        if self.backend is Backend.INTERNAL:
            async with self._lock:
                return self._entries.get(key)
        if self.backend is Backend.REDIS:
            try:
                value = await self._redis.get(key)
            except RedisError as exc:
                raise KeystoreError(str(exc), backend=self.backend.value) from exc
            if isinstance(value, bytes):
                value = value.decode("utf-8")
            return value
        if self.backend is Backend.PERSISTENT:
            try:
                return await asyncio.to_thread(_select_entry, self._engine, key)
            except SQLAlchemyError as exc:
                raise KeystoreError(str(exc), backend=self.backend.value) from exc
        return None

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
        if self._engine is not None:
            self._engine.dispose()

    def status(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"backend": self.backend.value, "enabled": self.enabled}
        if self.backend is Backend.INTERNAL:
            payload["entries"] = len(self._entries)
        return payload


def _initialise_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE IF NOT EXISTS proxy_keystore (
                    id TEXT PRIMARY KEY,
                    url TEXT NOT NULL
                )
                """
            )
        )


def _upsert_entry(engine: Engine, key: str, url: str) -> None:
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                INSERT INTO proxy_keystore (id, url)
                VALUES (:id, :url)
                ON CONFLICT(id) DO UPDATE SET url = excluded.url
                """
            ),
            {"id": key, "url": url},
        )


def _select_entry(engine: Engine, key: str) -> Optional[str]:
    with engine.connect() as conn:
        row = conn.execute(text("SELECT url FROM proxy_keystore WHERE id = :id"), {"id": key}).fetchone()
    return str(row[0]) if row else None
