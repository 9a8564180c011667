"""authcore HTTP entrypoint.

Run with:
  python -m authcore
"""

import uvicorn

from authcore.config import Settings
from authcore.logging_config import get_logging_config, setup_logging


def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    uvicorn.run(
        "authcore.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=get_logging_config(settings.log_level),
    )

if __name__ == "__main__":
    main()
