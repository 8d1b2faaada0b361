"""Command-line entrypoint: `python -m server` or `social-media-server`."""

import asyncio

from .bootstrap import ServerInstance
from .core.config import get_settings
from .core.logging import configure_logging
from .main import create_app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    instance = ServerInstance(settings, create_app(settings))
    try:
        asyncio.run(instance.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
