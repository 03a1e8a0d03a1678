from __future__ import annotations

from typing import Optional

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shoelace.api.provider import ProviderNotFoundError
from shoelace.common.schemas import Author, Media, Post, Subpost, User

# Smallest valid GIF and the signature plus IHDR chunk of a PNG.
GIF_BYTES = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00\x00\x00\x00"
    b",\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
)
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
)

CDN = "https://cdn.example.com"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeOrigin:
    """Serves canned bodies for origin URLs through an httpx MockTransport."""

    def __init__(self) -> None:
        self.responses: dict[str, Optional[tuple[int, bytes]]] = {}
        self.requests: list[str] = []

    def add(self, url: str, body: bytes, status: int = 200) -> str:
        self.responses[url] = (status, body)
        return url

    def fail(self, url: str) -> str:
        self.responses[url] = None
        return url

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url not in self.responses:
            return httpx.Response(404, content=b"missing")
        entry = self.responses[url]
        if entry is None:
            raise httpx.ConnectError("connection refused", request=request)
        status, body = entry
        # Origin headers are deliberately misleading; the proxy must sniff.
        return httpx.Response(status, content=body, headers={"Content-Type": "text/html"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


class FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.failing = False
        self.closed = False

    def _check(self) -> None:
        if self.failing:
            raise RedisConnectionError("redis down")

    async def ping(self) -> bool:
        self._check()
        return True

    async def set(self, key: str, value: str) -> bool:
        self._check()
        self.values[key] = value
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.values.get(key)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    redis = FakeRedis()
    monkeypatch.setattr("shoelace.proxy.keystore.redis_from_url", lambda *_args, **_kwargs: redis)
    return redis


def _media(name: str, thumbnail: bool = False, kind: str = "image") -> Media:
    return Media(
        kind=kind,
        content=f"{CDN}/{name}.jpg",
        thumbnail=f"{CDN}/{name}_thumb.jpg" if thumbnail else None,
        alt=f"{name} alt",
    )


@pytest.fixture
def sample_post() -> Post:
    return Post(
        id="C1abc",
        author=Author(username="zuck", pfp=f"{CDN}/zuck.jpg"),
        body="root post",
        media=[_media("root-a", thumbnail=True, kind="video"), _media("root-b", thumbnail=True)],
        parents=[
            Subpost(code="P1", author=Author(username="parent", pfp=f"{CDN}/parent.jpg"), media=[_media("parent")]),
        ],
        replies=[
            Subpost(code="R1", author=Author(username="reply1", pfp=f"{CDN}/reply1.jpg")),
            Subpost(
                code="R2",
                author=Author(username="reply2", pfp=f"{CDN}/reply2.jpg"),
                media=[_media("reply2", thumbnail=True)],
            ),
        ],
    )


@pytest.fixture
def sample_user() -> User:
    author = Author(username="zuck", pfp=f"{CDN}/zuck.jpg")
    return User(
        name="Mark",
        username="zuck",
        pfp=f"{CDN}/zuck.jpg",
        verified=True,
        followers=10,
        posts=[
            Subpost(code="A1", author=author, media=[_media("timeline-a")]),
            Subpost(code="A2", author=author.model_copy(), media=[_media("timeline-b", thumbnail=True)]),
        ],
    )


class FakeProvider:
    def __init__(self, users: dict[str, User] | None = None, posts: dict[str, Post] | None = None) -> None:
        self.users = users or {}
        self.posts = posts or {}

    async def fetch_user(self, tag: str) -> User:
        if tag not in self.users:
            raise ProviderNotFoundError(f"user {tag}")
        return self.users[tag].model_copy(deep=True)

    async def fetch_post(self, post_id: str) -> Post:
        if post_id not in self.posts:
            raise ProviderNotFoundError(f"post {post_id}")
        return self.posts[post_id].model_copy(deep=True)


@pytest.fixture
def provider(sample_user: User, sample_post: Post) -> FakeProvider:
    return FakeProvider(users={"zuck": sample_user}, posts={"C1abc": sample_post})
