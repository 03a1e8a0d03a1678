"""Uvicorn entrypoint for Shoelace."""

from __future__ import annotations

import uvicorn

from ..common.settings import ShoelaceSettings
from .app import create_app


def run() -> None:
    settings = ShoelaceSettings()
    uvicorn.run(create_app(settings), host=settings.listen, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
