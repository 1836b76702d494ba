from __future__ import annotations

import logging

import uvicorn

from ..settings import settings
from .app import create_app
from .graph_service import LineageGraphService


def main() -> None:
    logging.basicConfig(level=(settings.log_level or "INFO").upper())
    app = create_app(LineageGraphService(settings=settings))
    uvicorn.run(
        app,
        host=settings.bind_host,
        port=settings.bind_port,
        log_level=(settings.log_level or "info").lower(),
    )


if __name__ == "__main__":
    main()
