"""
Utility Functions
=================

Common utilities used across the TuneBloom engine.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence, TypeVar

from .config import STATE_DIR

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalStore:
    """
    Small file-backed key-value store, one JSON file per key.

    Holds per-device state: values are JSON documents and
    every read or write failure is logged and swallowed.
    """

    def __init__(self, state_dir: str):
        """
        Initialize store.

        Args:
            state_dir: Directory holding the key files
        """
        self.state_dir = Path(state_dir)

    def _path(self, key: str) -> Path:
        return self.state_dir / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        """Get value for key, or None if missing or unreadable."""
        path = self._path(key)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read local key %s: %s", key, e)
            return None

    def set(self, key: str, data: Any) -> bool:
        """Set value for key. Returns False if the write failed."""
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with open(self._path(key), 'w', encoding='utf-8') as f:
                json.dump(data, f)
            return True
        except (OSError, TypeError) as e:
            logger.warning("Could not write local key %s: %s", key, e)
            return False

    def delete(self, key: str) -> bool:
        """Remove key. Returns False if the key could not be removed."""
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning("Could not delete local key %s: %s", key, e)
            return False


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """
    Yield consecutive slices of at most `size` items.

    Args:
        items: Items to split
        size: Maximum slice length
    """
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


def dedupe_tracks(tracks: Iterable[T]) -> List[T]:
    """Drop tracks whose id was already seen, keeping first occurrence."""
    seen = set()
    unique = []
    for track in tracks:
        track_id = getattr(track, "id", None)
        if not track_id or track_id in seen:
            continue
        seen.add(track_id)
        unique.append(track)
    return unique


def normalize_track_id(value: str) -> str:
    """
    Normalize various track formats to a bare track ID.

    Args:
        value: Spotify track URL, URI, or ID

    Returns:
        Clean track ID
    """
    value = value.strip()
    if "spotify.com/track/" in value:
        return value.split("/track/")[-1].split("?")[0]
    if "spotify:track:" in value:
        return value.split("spotify:track:")[-1]
    return value


def default_state_dir() -> str:
    """State directory, read at call time so tests can override it."""
    return os.environ.get("TUNEBLOOM_STATE_DIR") or STATE_DIR
