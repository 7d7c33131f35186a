"""Run the relay with uvicorn: ``python -m murmur``."""

import uvicorn

from murmur.app.core.config import settings


def main() -> None:
    # Logging is configured by the app factory
    uvicorn.run(
        "murmur.app.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
