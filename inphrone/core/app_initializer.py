"""Application initialization orchestrator."""

from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from typing import Optional

import aiohttp
from aiohttp import web as aiohttp_web
from aiohttp_wsgi import WSGIHandler

from inphrone.config import Config, load_config
from inphrone.core.logger import get_logger
from inphrone.database import close_db_pool, init_db_pool, run_migrations
from inphrone.services.container import Services, build_services
from inphrone.utils.performance import PerformanceMonitor

logger = get_logger(__name__)


class ApplicationInitializer:
    """Orchestrates application initialization and lifecycle."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or load_config()
        self.db_pool = None
        self.services: Optional[Services] = None
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.websocket_manager = None
        self.web_runner = None
        self.monitor = PerformanceMonitor()

    async def initialize(self) -> None:
        """Initialize all application components."""
        await self._init_database()
        self._init_services()
        await self._init_web_server()

    async def run(self) -> None:
        """Run the application until cancelled."""
        await self.services.scheduler.start()
        logger.info("⏱ Slot scheduler started")

        try:
            while True:
                await asyncio.sleep(60)
                self.monitor.record_db_pool(self.db_pool.size, self.db_pool.available)
                logger.debug(
                    "Heartbeat: pool %s/%s idle, %s socket clients",
                    self.db_pool.available,
                    self.db_pool.size,
                    self.websocket_manager.get_online_count(),
                )
        except asyncio.CancelledError:
            logger.info("Shutting down...")
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        """Cleanup resources."""
        with suppress(Exception):
            if self.services:
                await self.services.scheduler.stop()
                self.services.feed.disconnect()
        with suppress(Exception):
            if self.web_runner:
                await self.web_runner.cleanup()
        with suppress(Exception):
            if self.http_session:
                await self.http_session.close()
        with suppress(Exception):
            await close_db_pool()

    async def _init_database(self) -> None:
        """Initialize database pool and run migrations."""
        self.db_pool = await init_db_pool(
            database_path=self.config.database_path,
            pool_size=self.config.db_pool_size,
            busy_timeout_ms=self.config.db_busy_timeout,
        )
        await run_migrations(self.db_pool)
        logger.info("✅ Database initialized")

    def _init_services(self) -> None:
        self.http_session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15))
        self.services = build_services(self.config, http_session=self.http_session)
        if not self.config.resend_api_key:
            logger.warning("RESEND_API_KEY not set, email delivery disabled")
        logger.info("✅ Services initialized (slots at %s, %s)",
                    ", ".join(self.config.slot_times), self.config.slot_timezone)

    async def _init_web_server(self) -> None:
        """Initialize web server."""
        from inphrone.web import create_app
        from inphrone.web.realtime import WebSocketManager

        flask_app = create_app(self.config, services=self.services)

        # Flask views run in the WSGI executor and hop back onto this loop
        wsgi_handler = WSGIHandler(flask_app)

        aio_app = aiohttp_web.Application()
        self.websocket_manager = WebSocketManager(self.services.feed)
        self.websocket_manager.attach(aio_app)
        aio_app.router.add_route("*", "/{path_info:.*}", wsgi_handler)

        self.web_runner = aiohttp_web.AppRunner(aio_app)
        await self.web_runner.setup()

        # Bind to PORT env var if present (Render/Heroku)
        effective_port = int(os.getenv("PORT", str(self.config.web_port)))
        effective_host = "0.0.0.0" if os.getenv("PORT") else self.config.web_host

        site = aiohttp_web.TCPSite(self.web_runner, effective_host, effective_port)
        await site.start()

        logger.info(f"🚀 Web server started on http://{effective_host}:{effective_port}")
        logger.info(f"🔗 Admin API: http://{effective_host}:{effective_port}/admin")
