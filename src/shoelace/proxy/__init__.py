"""Media proxy: content addressing, keystores and the ``/proxy`` endpoint."""

from .address import address
from .errors import (
    EndpointError,
    InvalidKeystoreConfig,
    KeystoreError,
    NoProxyError,
    ObjectNotFoundError,
    ProxyError,
    UnidentifiableMimeError,
)
from .keystore import Keystore
from .service import MediaProxy, ProxiedMedia, sniff_mime

__all__ = [
    "EndpointError",
    "InvalidKeystoreConfig",
    "Keystore",
    "KeystoreError",
    "MediaProxy",
    "NoProxyError",
    "ObjectNotFoundError",
    "ProxiedMedia",
    "ProxyError",
    "UnidentifiableMimeError",
    "address",
    "sniff_mime",
]
