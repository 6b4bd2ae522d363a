"""Application entry point."""

from __future__ import annotations

import asyncio
import logging

from inphrone.config import load_config
from inphrone.core import setup_logger
from inphrone.core.app_initializer import ApplicationInitializer
from inphrone.services import set_main_loop

config = load_config()

# Setup logging
logger = setup_logger(
    name="inphrone",
    level=logging.DEBUG if config.debug else logging.INFO,
    log_file=f"{config.log_folder}/app.log",
    colored=True
)


async def main() -> None:
    """Main application entry point."""
    # Flask views hop back onto this loop for every database call
    set_main_loop(asyncio.get_running_loop())

    app = ApplicationInitializer(config)
    await app.initialize()
    await app.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
    except Exception as e:
        logger.error(f"Application failed: {e}", exc_info=True)
