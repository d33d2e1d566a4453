"""
Exclusion Tracking Module
=========================

Keeps the track ids a listener must not be shown again.

Two overlapping in-memory sets are maintained:
    - excluded: never recommend
    - listened: already encountered (library, history, swipes)

Persistence is best-effort and two-tier:
    1. A local cache of the most recent served ids (JSON in the LocalStore)
    2. An optional remote ExclusionStore keyed by listener id

Store failures are logged and reported through PersistResult; they never
reach the recommendation flow. Once a set grows past the configured bound
membership checks fail open so the deck is never starved.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .config import ExclusionConfig
from .utils import LocalStore

logger = logging.getLogger(__name__)


class ExclusionReason(str, Enum):
    """Why a track id entered the exclusion set."""
    IN_LIBRARY = "in_library"
    RECENTLY_PLAYED = "recently_played"
    SWIPED = "swiped"
    SERVED = "served"

    # Loaded back from a store; never written remotely
    PERSISTED = "persisted"


@dataclass
class PersistResult:
    """Outcome of a best-effort persistence call."""
    ok: bool
    count: int = 0
    error: Optional[str] = None


# =============================================================================
# REMOTE STORES
# =============================================================================

class ExclusionStore(ABC):
    """Cross-session store of excluded track ids, keyed by listener."""

    @abstractmethod
    def get_excluded_track_ids(self, user_id: str) -> List[str]:
        """All ids recorded for the listener."""

    @abstractmethod
    def add_bulk_excluded_tracks(
        self,
        user_id: str,
        track_ids: List[str],
        reason: str = ExclusionReason.SWIPED.value
    ) -> PersistResult:
        """Record ids for the listener, tagged with a reason."""


class NullExclusionStore(ExclusionStore):
    """Store that remembers nothing. The engine works without memory across sessions."""

    def get_excluded_track_ids(self, user_id: str) -> List[str]:
        return []

    def add_bulk_excluded_tracks(self, user_id, track_ids, reason=ExclusionReason.SWIPED.value):
        return PersistResult(ok=True, count=0)


_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS excluded_tracks (
    user_id     TEXT NOT NULL,
    track_id    TEXT NOT NULL,
    reason      TEXT NOT NULL,
    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (user_id, track_id)
);
"""

_INSERT_SQL = """\
INSERT OR IGNORE INTO excluded_tracks (user_id, track_id, reason)
VALUES (?, ?, ?);
"""

_SELECT_SQL = """\
SELECT track_id FROM excluded_tracks
WHERE user_id = ?
ORDER BY created_at, rowid;
"""


class SQLiteExclusionStore(ExclusionStore):
    """
    SQLite-backed exclusion store.

    One row per (listener, track); the first reason recorded wins.
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        if not self._initialized:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        if not self._initialized:
            with conn:
                conn.execute(_CREATE_TABLE_SQL)
            self._initialized = True
        return conn

    def get_excluded_track_ids(self, user_id: str) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(_SELECT_SQL, (user_id,)).fetchall()
        finally:
            conn.close()
        return [r[0] for r in rows]

    def add_bulk_excluded_tracks(self, user_id, track_ids, reason=ExclusionReason.SWIPED.value):
        ids = [tid for tid in dict.fromkeys(track_ids) if tid]
        if not ids:
            return PersistResult(ok=True, count=0)

        conn = self._connect()
        try:
            with conn:
                conn.executemany(_INSERT_SQL, [(user_id, tid, reason) for tid in ids])
        finally:
            conn.close()
        return PersistResult(ok=True, count=len(ids))


# =============================================================================
# LOCAL CACHE
# =============================================================================

class LocalExclusionCache:
    """Bounded list of recently served ids kept in local storage."""

    def __init__(self, store: LocalStore, key: str, limit: int):
        self.store = store
        self.key = key
        self.limit = limit

    def load(self) -> List[str]:
        data = self.store.get(self.key)
        if not isinstance(data, list):
            return []
        return [tid for tid in data if isinstance(tid, str) and tid]

    def remember(self, track_ids: Iterable[str]) -> bool:
        """
        Append ids and trim to the most recent `limit`.

        Returns:
            False if the write failed
        """
        new_ids = list(dict.fromkeys(tid for tid in track_ids if tid))
        fresh = set(new_ids)

        # Re-adding an id moves it to the recent end
        merged = [tid for tid in self.load() if tid not in fresh]
        merged.extend(new_ids)
        return self.store.set(self.key, merged[-self.limit:])


# =============================================================================
# TRACKER
# =============================================================================

class ExclusionTracker:
    """
    In-session exclusion and listened sets with best-effort persistence.

    Usage:
        tracker = ExclusionTracker(local_store=LocalStore(STATE_DIR))
        tracker.exclude("t1")
        tracker.is_excluded("t1")  # True
    """

    def __init__(
        self,
        remote_store: Optional[ExclusionStore] = None,
        local_store: Optional[LocalStore] = None,
        config: Optional[ExclusionConfig] = None
    ):
        """
        Initialize tracker.

        Args:
            remote_store: Cross-session store (no-op if None)
            local_store: Local key-value store for the served-id cache
            config: Exclusion bounds
        """
        self.config = config or ExclusionConfig()
        self.remote_store = remote_store or NullExclusionStore()
        self.local_cache = None
        if local_store is not None:
            self.local_cache = LocalExclusionCache(
                local_store,
                self.config.local_cache_key,
                self.config.local_cache_limit,
            )

        self.excluded: Set[str] = set()
        self.listened: Set[str] = set()

        # Ids merged from history or a store, with the reason; undo leaves these alone
        self._sources: Dict[str, str] = {}

    @property
    def size(self) -> int:
        return len(self.excluded)

    @property
    def fail_open(self) -> bool:
        return len(self.excluded) > self.config.max_exclusion_set_size

    def is_excluded(self, track_id: str) -> bool:
        """Whether the track must not be recommended."""
        if self.fail_open:
            return False
        return track_id in self.excluded

    def is_listened(self, track_id: str) -> bool:
        """Whether the listener already encountered the track."""
        if len(self.listened) > self.config.max_exclusion_set_size:
            return False
        return track_id in self.listened

    def exclude(self, track_id: str) -> None:
        """Record a swipe. Idempotent."""
        if not track_id:
            return
        self.excluded.add(track_id)
        self.listened.add(track_id)

    def unexclude(self, track_id: str) -> None:
        """
        Undo a swipe. Persisted stores are not touched.

        Ids that came from the library, history, playlists or a store stay
        excluded; only swipe-originated entries are retracted.
        """
        if track_id in self._sources:
            logger.debug("Keeping %s excluded (source: %s)", track_id, self._sources[track_id])
            return
        self.excluded.discard(track_id)
        self.listened.discard(track_id)

    def merge_from_source(self, track_ids: Iterable[str], reason: str) -> int:
        """
        Merge ids discovered from a history or persistence source.

        Returns:
            Number of ids that were not known before
        """
        reason = getattr(reason, "value", reason)
        added = 0
        for track_id in track_ids:
            if not track_id:
                continue
            if track_id not in self.listened:
                added += 1
            self.excluded.add(track_id)
            self.listened.add(track_id)
            if reason != ExclusionReason.SWIPED.value:
                self._sources.setdefault(track_id, reason)
        logger.debug("Merged %d new %s ids", added, reason)
        return added

    def clear(self) -> None:
        """Drop all in-memory state. Persisted stores are untouched."""
        self.excluded.clear()
        self.listened.clear()
        self._sources.clear()

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def load_persisted(self, user_id: Optional[str]) -> int:
        """
        Merge locally and remotely persisted ids.

        A persisted list larger than the fail-open bound is skipped.

        Returns:
            Number of ids merged
        """
        persisted: List[str] = []
        if self.local_cache is not None:
            persisted.extend(self.local_cache.load())

        if user_id:
            try:
                persisted.extend(self.remote_store.get_excluded_track_ids(user_id))
            except Exception as e:
                logger.warning("Could not load remote exclusions: %s", e)

        unique = list(dict.fromkeys(persisted))
        if len(unique) > self.config.max_exclusion_set_size:
            logger.warning(
                "Ignoring %d persisted exclusions (bound %d)",
                len(unique), self.config.max_exclusion_set_size
            )
            return 0

        return self.merge_from_source(unique, ExclusionReason.PERSISTED)

    def persist(
        self,
        user_id: Optional[str],
        track_ids: List[str],
        reason: str
    ) -> PersistResult:
        """Best-effort remote write. Never raises."""
        reason = getattr(reason, "value", reason)
        if not user_id:
            return PersistResult(ok=False, error="no listener id")
        if not track_ids:
            return PersistResult(ok=True, count=0)

        try:
            result = self.remote_store.add_bulk_excluded_tracks(user_id, list(track_ids), reason)
        except Exception as e:
            logger.warning("Could not persist %d %s exclusions: %s", len(track_ids), reason, e)
            return PersistResult(ok=False, error=str(e))

        if not result.ok:
            logger.warning("Exclusion store rejected %s write: %s", reason, result.error)
        return result

    def remember_locally(self, track_ids: List[str]) -> bool:
        """Add ids to the bounded local cache. Never raises."""
        if self.local_cache is None or not track_ids:
            return False
        try:
            return self.local_cache.remember(track_ids)
        except Exception as e:
            logger.warning("Could not update local exclusion cache: %s", e)
            return False
