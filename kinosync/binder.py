import logging
import math
from datetime import datetime
from typing import Callable, Optional
from .models import ClientSession, utc_now
from .state import PlaybackStore

logger = logging.getLogger(__name__)

class PlaybackBinder:
    """
    Player-side wiring: selecting media, reporting progress ticks and
    reading back the resume offset when media loads.
    """

    def __init__(self, store: PlaybackStore, session: ClientSession, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.session = session
        self.clock = clock

    def select_media(self, media_id: str):
        self.session.most_recent_id = media_id
        logger.info(f"Selected media {media_id}")

    def on_time_update(self, current_time: float):
        media_id = self.session.most_recent_id
        if not media_id:
            logger.debug("Progress tick with no media selected, ignoring")
            return
        if not math.isfinite(current_time):
            logger.warning(f"Ignoring non-finite progress tick for {media_id}: {current_time}")
            return

        record = self.store.get(media_id)
        self.store.put(media_id, record.model_copy(update={
            "played_for": float(current_time),
            "viewed_at": self.clock(),
        }))
        logger.debug(f"Updating time for: {media_id}, to time: {current_time}s")

    def on_loaded(self) -> Optional[float]:
        """Offset to seek to for the selected media, None if never played."""
        media_id = self.session.most_recent_id
        if not media_id:
            return None
        record = self.store.get(media_id)
        if record.viewed_at is None and not record.played_for:
            return None
        return record.played_for
