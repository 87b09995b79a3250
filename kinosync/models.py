import math
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WatchRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    played_for: float = Field(default=0.0, alias="playedFor")  # seconds
    viewed_at: Optional[datetime] = Field(default=None, alias="viewedAt")  # None == never played

    @field_validator("played_for", mode="before")
    @classmethod
    def _coerce_played_for(cls, value: Any) -> Any:
        """
        Older revisions persisted playedFor as a string, sometimes already
        rendered ("42 seconds"). Keep the leading number, default to 0.
        Non-finite offsets read as 0 too.
        """
        if value is None:
            return 0.0
        if isinstance(value, str):
            match = _LEADING_NUMBER.match(value)
            return float(match.group(1)) if match else 0.0
        if isinstance(value, (int, float)) and not math.isfinite(value):
            return 0.0
        return value

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> Any:
        return "" if value is None else value


class ViewEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    played_for: str = Field(alias="playedFor")
    viewed_at: datetime = Field(alias="viewedAt")


class ContextSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(default="", alias="sessionId")
    time_of_day: datetime = Field(alias="timeOfDay")
    viewing_history: List[ViewEntry] = Field(default_factory=list, alias="viewingHistory")
    last_played_name: Optional[str] = Field(default=None, alias="lastPlayedName")


class EventType(str, Enum):
    HEALTH = "health"  # liveness probe, either direction
    CLIENT_CONTEXT = "clientContext"  # client -> server only


class Event(BaseModel):
    """Envelope for every message on the event stream, in either direction."""
    type: str
    time: datetime = Field(default_factory=utc_now)
    payload: Any = Field(default_factory=dict)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class CatalogItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ID: str
    Name: str = ""
    MIMEType: str = ""

    @property
    def is_video(self) -> bool:
        return "video" in self.MIMEType


class ClientSession(BaseModel):
    """Process-wide client state, created once at startup."""
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    most_recent_id: str = ""
