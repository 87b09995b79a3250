import asyncio
import logging
from typing import Optional, Set
from .config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Loggers whose records must not be forwarded, they fire while forwarding
_NOT_FORWARDED = ("httpx", "httpcore", "asyncio")


def setup_logging(level: Optional[str] = None):
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT
    )
    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)


def level_label(levelno: int) -> str:
    """Level names understood by the server's /gallery/log endpoint."""
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    if levelno >= logging.INFO:
        return "info"
    return "debug"


class RemoteLogHandler(logging.Handler):
    """
    Forwards log records to the server so client activity shows up in its
    log. Records are posted from the running event loop and dropped when
    there is none.
    """

    def __init__(self, gallery, level=logging.INFO):
        super().__init__(level)
        self.gallery = gallery
        self._pending: Set[asyncio.Task] = set()
        self.setFormatter(logging.Formatter('%(name)s: %(message)s'))

    def emit(self, record: logging.LogRecord):
        if record.name.split(".")[0] in _NOT_FORWARDED:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return

        task = loop.create_task(self.gallery.post_log(level_label(record.levelno), message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self):
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
