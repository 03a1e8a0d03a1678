from __future__ import annotations

from pathlib import Path

import pytest

from shoelace.common.settings import Backend, ShoelaceSettings


def test_defaults(monkeypatch):
    monkeypatch.delenv("SHOELACE_PROXY_BACKEND", raising=False)
    settings = ShoelaceSettings()
    assert settings.proxy_backend is Backend.INTERNAL
    assert settings.port == 8080
    assert settings.endpoint_api is True
    assert settings.log_cdn is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SHOELACE_PROXY_BACKEND", "Redis")
    monkeypatch.setenv("SHOELACE_REDIS_URI", "redis://cache:6379/1")
    monkeypatch.setenv("SHOELACE_BASE_URL", "https://shoelace.example.org/")
    monkeypatch.setenv("SHOELACE_LOG_CDN", "true")
    settings = ShoelaceSettings()
    assert settings.proxy_backend is Backend.REDIS
    assert settings.redis_uri == "redis://cache:6379/1"
    assert settings.base_url == "https://shoelace.example.org"
    assert settings.log_cdn is True


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("none", Backend.NONE),
        ("disabled", Backend.NONE),
        ("in-memory", Backend.INTERNAL),
        ("external-kv", Backend.REDIS),
        ("persistent", Backend.PERSISTENT),
    ],
)
def test_backend_aliases(value: str, expected: Backend):
    assert ShoelaceSettings(proxy_backend=value).proxy_backend is expected


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        ShoelaceSettings(proxy_backend="memcached")


def test_keystore_path_becomes_sqlite_url(tmp_path: Path):
    settings = ShoelaceSettings(keystore_database_url=str(tmp_path / "keys.db"))
    assert settings.keystore_database_url == f"sqlite+pysqlite:///{(tmp_path / 'keys.db').resolve().as_posix()}"
