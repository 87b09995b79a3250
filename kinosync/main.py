import asyncio
import logging
import signal
import sys
import uvicorn

from .config import settings
from .logs import RemoteLogHandler, setup_logging
from .models import ClientSession
from .storage import LocalStorage
from .state import PlaybackStore
from .context import ContextBuilder
from .binder import PlaybackBinder
from .sync_client import SyncClient
from .clients.gallery_client import GalleryClient
from . import server

logger = logging.getLogger("main")

class KinoSyncService:
    def __init__(self):
        # Everything process-wide hangs off this object, built once at startup
        self.session = ClientSession()
        self.storage = LocalStorage(settings.STATE_PATH)
        self.store = PlaybackStore(self.storage)
        self.builder = ContextBuilder(self.store, self.session)
        self.binder = PlaybackBinder(self.store, self.session)
        self.sync_client = SyncClient(self.builder)
        self.gallery = GalleryClient()
        self.remote_log_handler = None

        server.app.state.service = self

    def enable_remote_logging(self):
        self.remote_log_handler = RemoteLogHandler(self.gallery)
        logging.getLogger().addHandler(self.remote_log_handler)

    async def refresh_catalog(self):
        """Periodically pick up display names from the catalog listing."""
        logger.info("Catalog refresh started")
        while True:
            try:
                await self.gallery.sync_catalog_names(self.store)
            except Exception as e:
                logger.error(f"Error refreshing catalog: {e}", exc_info=True)

            await asyncio.sleep(settings.CATALOG_REFRESH_INTERVAL_SECONDS)

    async def start(self):
        if settings.REMOTE_LOG_ENABLED:
            self.enable_remote_logging()

        logger.info(f"Starting client session {self.session.session_id}")
        tasks = [
            asyncio.create_task(self.sync_client.run()),
            asyncio.create_task(self.refresh_catalog())
        ]

        if settings.HTTP_SERVER_ENABLED:
            config = uvicorn.Config(server.app, host="0.0.0.0", port=settings.HTTP_SERVER_PORT, log_level="warning")
            server_task = uvicorn.Server(config).serve()
            tasks.append(asyncio.create_task(server_task))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            for task in tasks:
                task.cancel()
            await self.sync_client.stop()
            if self.remote_log_handler is not None:
                logging.getLogger().removeHandler(self.remote_log_handler)
                await self.remote_log_handler.drain()
            await self.gallery.close()
            self.storage.save()

def handle_sigterm(sig, frame):
    logger.info("Received SIGTERM, shutting down...")
    sys.exit(0)

def run():
    setup_logging()
    signal.signal(signal.SIGTERM, handle_sigterm)
    service = KinoSyncService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

if __name__ == "__main__":
    run()
