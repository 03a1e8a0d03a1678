"""Interface to the upstream content provider."""

from __future__ import annotations

import importlib
from typing import Protocol

from ..common.schemas import Post, User


class ProviderError(RuntimeError):
    """The provider could not produce a value tree."""


class ProviderNotFoundError(ProviderError):
    """The requested user or post does not exist upstream."""


class ContentProvider(Protocol):
    async def fetch_user(self, tag: str) -> User:
        ...

    async def fetch_post(self, post_id: str) -> Post:
        ...


def load_provider(path: str) -> ContentProvider:
    """Instantiate a provider from a ``module:factory`` path."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Provider path must look like 'module:factory', got {path!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    return factory()
