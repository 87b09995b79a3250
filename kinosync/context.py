import logging
import math
from datetime import datetime
from typing import Callable, Optional
from .models import ClientSession, ContextSnapshot, ViewEntry, utc_now
from .state import PlaybackStore

logger = logging.getLogger(__name__)

_UNITS = (("hour", 3600), ("minute", 60), ("second", 1))


def format_duration(seconds: float) -> str:
    """Render an offset in seconds as e.g. '1 hour, 2 minutes, 5 seconds'."""
    if not math.isfinite(seconds):
        return "0 seconds"
    remaining = max(0, int(seconds))
    if remaining == 0:
        return "0 seconds"
    parts = []
    for unit, size in _UNITS:
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count} {unit}{'' if count == 1 else 's'}")
    return ", ".join(parts)


class ContextBuilder:
    """Builds the viewing-context snapshot pushed to the server."""

    def __init__(
        self,
        store: PlaybackStore,
        session: Optional[ClientSession] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.session = session or ClientSession()
        self.clock = clock

    def build(self) -> ContextSnapshot:
        # records() hands out copies, the stored numeric offsets stay untouched
        history = [
            ViewEntry(
                id=media_id,
                name=record.name,
                played_for=format_duration(record.played_for),
                viewed_at=record.viewed_at,
            )
            for media_id, record in self.store.records()
            if record.viewed_at is not None
        ]

        last_played_name = None
        if self.session.most_recent_id:
            last_played_name = self.store.get(self.session.most_recent_id).name or None

        logger.debug(f"Built client context with {len(history)} viewed item(s)")
        return ContextSnapshot(
            session_id=self.session.session_id,
            time_of_day=self.clock(),
            viewing_history=history,
            last_played_name=last_played_name,
        )
