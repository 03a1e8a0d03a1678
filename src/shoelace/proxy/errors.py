"""Failures raised by the media proxy and its keystores."""

from __future__ import annotations

from typing import Optional

from fastapi import status


class ProxyError(Exception):
    """Base class carrying the HTTP status a failure is rendered with."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "proxy failure"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class NoProxyError(ProxyError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Proxy is unavailable"


class ObjectNotFoundError(ProxyError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Couldn't find object"


class KeystoreError(ProxyError):
    message = "Keystore error"

    def __init__(self, message: Optional[str] = None, *, backend: Optional[str] = None) -> None:
        super().__init__(f"Keystore error: {message}" if message else None)
        self.backend = backend


class InvalidKeystoreConfig(KeystoreError):
    def __init__(self, backend: str) -> None:
        super().__init__(f"invalid config for {backend}", backend=backend)


class EndpointError(ProxyError):
    """Fetching the origin URL failed.

    Only an upstream 404 is passed through; every other failure, including
    transport errors with no status at all, becomes a 502.
    """

    message = "Endpoint error"

    def __init__(self, message: Optional[str] = None, *, upstream_status: Optional[int] = None) -> None:
        super().__init__(f"Endpoint error: {message}" if message else None)
        self.upstream_status = upstream_status

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if self.upstream_status == status.HTTP_404_NOT_FOUND:
            return status.HTTP_404_NOT_FOUND
        return status.HTTP_502_BAD_GATEWAY


class UnidentifiableMimeError(ProxyError):
    message = "Unable to identify mime type"
