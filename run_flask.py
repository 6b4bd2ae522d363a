"""Direct Flask server runner (no aiohttp, no Socket.IO relay).

The database pool and the slot scheduler live on a background event loop;
Flask's threaded dev server submits coroutines to it.
"""

from __future__ import annotations

import logging

from inphrone.config import load_config
from inphrone.core import setup_logger
from inphrone.database import close_db_pool, init_db_pool, run_migrations
from inphrone.services.async_runner import run_coroutine_sync, start_background_loop, stop_background_loop
from inphrone.services.container import build_services
from inphrone.web import create_app


async def _init_database(config) -> None:
    pool = await init_db_pool(config.database_path, config.db_pool_size, config.db_busy_timeout)
    await run_migrations(pool)


if __name__ == "__main__":
    config = load_config()
    setup_logger(name="inphrone", level=logging.DEBUG if config.debug else logging.INFO)

    loop, thread = start_background_loop()
    run_coroutine_sync(_init_database(config))

    services = build_services(config)
    run_coroutine_sync(services.scheduler.start())

    app = create_app(config, services=services)
    try:
        app.run(host=config.web_host, port=config.web_port, debug=config.debug, threaded=True, use_reloader=False)
    finally:
        run_coroutine_sync(services.scheduler.stop())
        run_coroutine_sync(close_db_pool())
        stop_background_loop(loop, thread)
