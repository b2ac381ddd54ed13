import asyncio
import logging
import signal
from typing import Optional

from courseshelf.api.server import ApiServer
from courseshelf.config import AppConfig
from courseshelf.db.sqlite import Database
from courseshelf.services.media_repository import MediaRepository
from courseshelf.streaming import MediaStreamer

logger = logging.getLogger(__name__)


class CourseShelfApp:
    """Owns the database handle and the HTTP server for one process."""

    def __init__(self, app_config: AppConfig):
        """Wire up the components from a configuration."""
        self.config = app_config

        self.db = Database(app_config.db_file)
        self.repository = MediaRepository(self.db)
        self.streamer = MediaStreamer(
            self.repository,
            media_roots=app_config.stream.media_roots,
            chunk_size=app_config.stream.chunk_size
        )
        self.api_server = ApiServer(
            self.repository,
            self.streamer,
            host=app_config.server.host,
            port=app_config.server.http_port,
            auth_header=app_config.server.auth_header
        )

        self._running = False
        self._stop_event = asyncio.Event()

    async def start(self, install_signal_handlers: bool = True) -> None:
        """Start the application."""
        if self._running:
            logger.warning("Application is already running")
            return

        logger.info("Starting CourseShelf")
        self._running = True
        self._stop_event.clear()

        if not self.streamer.media_roots:
            logger.warning("No media roots configured; local videos will not be served (set MEDIA_ROOTS)")

        await self.db.initialize()
        await self.api_server.start()

        if install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(self.stop(s)))

        logger.info("CourseShelf started")

    async def stop(self, sig: Optional[signal.Signals] = None) -> None:
        """Stop the application."""
        if not self._running:
            return

        if sig:
            logger.info(f"Received signal {sig.name}, shutting down")
        else:
            logger.info("Shutting down CourseShelf")

        self._running = False

        await self.api_server.stop()
        await self.db.close()

        self._stop_event.set()
        logger.info("CourseShelf stopped")

    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._running

    async def wait_for_stop(self) -> None:
        """Wait for the application to stop."""
        await self._stop_event.wait()
