"""Composition root -- wire everything together."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Any

import httpx

from chatbridge.chat import ChatService
from chatbridge.config import ChatBridgeConfig, load_config, validate_startup
from chatbridge.history import HistoryStore
from chatbridge.log import logger
from chatbridge.memory import MemoryStore
from chatbridge.memory_integration import MemoryIntegration
from chatbridge.provider_factory import ProviderFactory
from chatbridge.scheduler import MaintenanceScheduler
from chatbridge.skills import SkillExecutor, SkillRegistry, build_skills


class ChatBridge:
    """Main application. Create, configure, run.

    ``config`` bypasses file/env loading; ``transport`` is handed to every
    httpx client (local providers and web search).
    """

    def __init__(
        self,
        config_path: str | None = None,
        config: ChatBridgeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config if config is not None else load_config(config_path)

        # Configure logging early -- before any logger.info() calls
        from chatbridge.log import configure as _configure_log
        lc = self.config.log
        _configure_log(
            level=lc.level, fmt=lc.format, json_format=lc.json_format,
            file=lc.file, rotation=lc.rotation, retention=lc.retention,
        )

        validate_startup(self.config)

        history_dir = Path(self.config.history.dir).expanduser() if self.config.history.dir else None
        self.history = HistoryStore(history_dir)
        self.memory = MemoryStore(self.config.memory.path)
        self.memory_integration = MemoryIntegration(self.memory)

        self.providers = ProviderFactory(self.config.providers, transport=transport)
        self.chat = ChatService(self.history, self.providers)

        self.registry = SkillRegistry()
        self.executor = SkillExecutor(self.registry, timeout=self.config.skills.timeout)
        self.skills = build_skills(self.registry, self.executor, self.config.skills, transport=transport)

        self.scheduler = MaintenanceScheduler(self.memory, self.config.maintenance.cleanup_cron)
        self._web_server: Any = None

    async def run(self) -> None:
        await self._start_web_server()
        logger.info(
            f"ChatBridge starting -- default provider={self.providers.default_provider}, "
            f"skills={len(self.registry.get_all())}"
        )

        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()

        def _signal_handler() -> None:
            if not shutdown_event.is_set():
                logger.info("Shutdown signal received, stopping gracefully...")
                shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except (NotImplementedError, OSError):
                # No add_signal_handler on Windows; Ctrl+C still cancels run().
                pass

        tasks = [asyncio.create_task(self.scheduler.run())]
        try:
            shutdown_task = asyncio.create_task(shutdown_event.wait())
            await asyncio.wait([*tasks, shutdown_task], return_when=asyncio.FIRST_COMPLETED)
            if not shutdown_event.is_set():
                # Scheduler returned (disabled); keep serving until asked to stop.
                await shutdown_task
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown(tasks)

    async def _start_web_server(self) -> None:
        wc = self.config.web
        if not wc.enabled:
            logger.info("HTTP API disabled (web.enabled=false)")
            return
        from chatbridge.web.server import WebServer
        self._web_server = WebServer(
            self, host=wc.host, port=wc.port,
            auth_token=wc.auth_token, cors_origin=wc.cors_origin,
        )
        await self._web_server.start()

    async def _shutdown(self, tasks: list[asyncio.Task[Any]]) -> None:
        logger.info("Shutting down components...")
        if self._web_server is not None:
            await self._web_server.stop()
        self.scheduler.stop()
        for t in tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.memory.close()
        logger.info("ChatBridge shutdown complete.")
