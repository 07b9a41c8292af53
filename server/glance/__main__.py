"""命令行入口 — python -m glance。"""

from __future__ import annotations

import uvicorn

from glance.app import create_app
from glance.config import load_settings


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level.lower(),
    )


if __name__ == "__main__":
    main()
