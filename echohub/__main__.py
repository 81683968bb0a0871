"""Run the server: ``python -m echohub`` (host/port from settings, PORT env)."""

import uvicorn

from echohub.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "echohub.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
