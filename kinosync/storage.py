import json
import logging
import os
import fcntl
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from .config import settings

logger = logging.getLogger(__name__)

class LocalStorage:
    """
    File-backed string key/value document, the client's equivalent of the
    browser's localStorage. Every mutation rewrites the whole file.
    """

    def __init__(self, path: str, persist: Optional[bool] = None):
        self.path = Path(path)
        self.persist = settings.PERSIST_ENABLED if persist is None else persist
        self.read_only = False
        self._data: Dict[str, str] = {}
        self._load()

    def _load(self):
        if not self.persist:
            return
        if not self.path.exists():
            logger.info(f"No local storage found at {self.path}, creating new.")
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            self._data = {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load local storage: {e}. Starting fresh.")
            self._data = {}

    @property
    def tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def save(self):
        if not self.persist or self.read_only:
            return

        payload = json.dumps(self._data, indent=2)
        try:
            self._write_atomically(payload)
        except OSError as e:
            logger.error(f"Failed to save local storage to {self.path}: {e}")
            # Keep serving from memory, stop touching the disk for this run
            self.read_only = True

    def _write_atomically(self, payload: str):
        """Write a locked sibling temp file, then swap it over the real one."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.tmp_path.open("w", encoding="utf-8") as f:
            try:
                fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                # Changes stay in memory and go out with the next write
                logger.warning(f"{self.tmp_path} is locked by another writer, skipping this save")
                return
            try:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)
        os.replace(self.tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str):
        self._data[key] = value
        self.save()

    def remove_item(self, key: str):
        if self._data.pop(key, None) is not None:
            self.save()

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def items(self) -> List[Tuple[str, str]]:
        return list(self._data.items())

    def __len__(self) -> int:
        return len(self._data)
