import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from pydantic import ValidationError
from .config import settings
from .models import WatchRecord
from .storage import LocalStorage

logger = logging.getLogger(__name__)

# Per-item keys written by earlier client revisions, before the single mapping
LEGACY_PLAYED_FOR_SUFFIX = "_has_been_played_for_s"
LEGACY_PLAYED_AT_SUFFIX = "_was_played_last_at"
LEGACY_DURATION_PREFIX = "video_play_duration_"

class PlaybackStore:
    """
    Durable mapping of media id -> WatchRecord, serialized as one JSON object
    under a fixed key in local storage.

    Reads never raise: unknown ids and corrupt data come back as a default
    WatchRecord. Writes replace the entry and rewrite the whole mapping.
    """

    def __init__(self, storage: LocalStorage, key: Optional[str] = None):
        self.storage = storage
        self.key = key or settings.STORE_KEY
        self._merge_legacy_keys()

    def _read_mapping(self) -> Dict[str, Any]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Stored playback mapping under '{self.key}' is corrupt: {e}. Treating as empty.")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Stored playback mapping under '{self.key}' is not an object. Treating as empty.")
            return {}
        return data

    def _write_mapping(self, mapping: Dict[str, Any]):
        self.storage.set_item(self.key, json.dumps(mapping))

    @staticmethod
    def _parse_record(media_id: str, raw: Any) -> Optional[WatchRecord]:
        if not isinstance(raw, dict):
            logger.warning(f"Discarding malformed watch record for {media_id}: {raw!r}")
            return None
        try:
            return WatchRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Discarding invalid watch record for {media_id}: {e}")
            return None

    def get(self, media_id: str) -> WatchRecord:
        raw = self._read_mapping().get(media_id)
        if raw is None:
            return WatchRecord()
        return self._parse_record(media_id, raw) or WatchRecord()

    def put(self, media_id: str, record: WatchRecord):
        # model_copy skips validation, run the record through it once more
        record = WatchRecord.model_validate(record.model_dump(by_alias=True))
        mapping = self._read_mapping()
        mapping[media_id] = record.model_dump(mode="json", by_alias=True)
        self._write_mapping(mapping)

    def set_name(self, media_id: str, name: str):
        record = self.get(media_id)
        if record.name == name and media_id in self._read_mapping():
            return
        self.put(media_id, record.model_copy(update={"name": name}))

    def records(self) -> List[Tuple[str, WatchRecord]]:
        """Copies of every valid record, in insertion order."""
        result = []
        for media_id, raw in self._read_mapping().items():
            record = self._parse_record(media_id, raw)
            if record is not None:
                result.append((media_id, record))
        return result

    def dump(self) -> Dict[str, str]:
        """Raw contents of the underlying local storage."""
        return dict(self.storage.items())

    def __len__(self) -> int:
        return len(self._read_mapping())

    def _merge_legacy_keys(self):
        legacy: Dict[str, Dict[str, str]] = {}
        for key, value in self.storage.items():
            if key.endswith(LEGACY_PLAYED_FOR_SUFFIX):
                legacy.setdefault(key[:-len(LEGACY_PLAYED_FOR_SUFFIX)], {})["playedFor"] = value
            elif key.endswith(LEGACY_PLAYED_AT_SUFFIX):
                legacy.setdefault(key[:-len(LEGACY_PLAYED_AT_SUFFIX)], {})["viewedAt"] = value
            elif key.startswith(LEGACY_DURATION_PREFIX):
                legacy.setdefault(key[len(LEGACY_DURATION_PREFIX):], {}).setdefault("playedFor", value)

        if not legacy:
            return

        mapping = self._read_mapping()
        merged_count = 0
        for media_id, fields in legacy.items():
            if not media_id:
                continue
            try:
                old = WatchRecord.model_validate(fields)
            except ValidationError as e:
                logger.warning(f"Skipping unreadable legacy progress for {media_id}: {e}")
                continue
            # A viewedAt without an offset would break the record invariant
            if "playedFor" not in fields:
                old = old.model_copy(update={"viewed_at": None})

            current = self._parse_record(media_id, mapping[media_id]) if media_id in mapping else None
            current = current or WatchRecord()
            if current.viewed_at is not None:
                continue
            if old.viewed_at is None and current.played_for:
                continue

            merged = current.model_copy(update={"played_for": old.played_for, "viewed_at": old.viewed_at})
            if merged == current:
                continue
            mapping[media_id] = merged.model_dump(mode="json", by_alias=True)
            merged_count += 1

        if merged_count:
            logger.info(f"Merged legacy playback progress for {merged_count} item(s)")
            self._write_mapping(mapping)
