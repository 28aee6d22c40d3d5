"""Run the service with uvicorn: python -m freight_board_service."""

from __future__ import annotations

import uvicorn

from freight_board_service.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "freight_board_service.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level.lower(),
    )


if __name__ == "__main__":
    main()
