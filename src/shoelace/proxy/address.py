"""Content addressing for origin media URLs."""

from __future__ import annotations

import base64
import hashlib

ADDRESS_LENGTH = 43


def address(url: str) -> str:
    """Return the stable, URL-safe key for ``url``.

    BLAKE2s-256 over the UTF-8 bytes, base64url without padding. The value is
    independent of the keystore in use, so public proxy links survive a
    backend switch.
    """
    digest = hashlib.blake2s(url.encode("utf-8"), digest_size=32).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
