"""
Feature & Data Model Module
===========================

Typed views over Spotify API payloads plus the taste-profile math.

Every optional field of the API response has a defined default here
(missing artists -> empty list, missing album -> empty Album), so the rest
of the engine never probes raw dictionaries.

Profiles:
    1. TasteProfile - long-term, built from listening history
    2. FeedbackProfile - current session only, built from liked tracks
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .config import AUDIO_FEATURES, MAX_SEEDS


@dataclass
class Artist:
    """Artist record as it appears on a track or in top artists."""
    id: str
    name: str = ""
    genres: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Artist":
        return cls(
            id=data.get('id') or "",
            name=data.get('name') or "",
            genres=list(data.get('genres') or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "genres": list(self.genres)}


@dataclass
class Album:
    """Album metadata attached to a track."""
    id: Optional[str] = None
    name: str = ""
    images: List[str] = field(default_factory=list)
    release_date: Optional[str] = None

    @classmethod
    def from_api(cls, data: Optional[Dict[str, Any]]) -> "Album":
        if not data:
            return cls()
        images = []
        for image in data.get('images') or []:
            # Liked-track lists store plain urls, the API stores objects
            url = image.get('url') if isinstance(image, dict) else image
            if url:
                images.append(url)
        return cls(
            id=data.get('id'),
            name=data.get('name') or "",
            images=images,
            release_date=data.get('release_date'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "images": list(self.images),
            "release_date": self.release_date,
        }


@dataclass
class AudioFeatures:
    """
    Audio feature vector for a single track.

    Scalar signals are in [0, 1]; tempo is BPM. Any field may be None when
    the API does not report it.
    """
    danceability: Optional[float] = None
    energy: Optional[float] = None
    valence: Optional[float] = None
    tempo: Optional[float] = None
    acousticness: Optional[float] = None
    instrumentalness: Optional[float] = None
    speechiness: Optional[float] = None

    @classmethod
    def from_api(cls, data: Optional[Dict[str, Any]]) -> Optional["AudioFeatures"]:
        if not data:
            return None
        values = {}
        for feature in AUDIO_FEATURES:
            value = data.get(feature)
            values[feature] = float(value) if value is not None else None
        return cls(**values)

    def get(self, feature: str) -> Optional[float]:
        return getattr(self, feature, None)

    def to_dict(self) -> Dict[str, float]:
        """Only the features that are present."""
        return {
            f: getattr(self, f) for f in AUDIO_FEATURES
            if getattr(self, f) is not None
        }

    def to_vector(self, features: Iterable[str] = AUDIO_FEATURES) -> np.ndarray:
        """Feature values as an array, NaN where missing."""
        return np.array([
            np.nan if self.get(f) is None else self.get(f)
            for f in features
        ], dtype=float)


@dataclass
class HeardSample:
    """Display-only projection of a track the listener already knows."""
    id: str
    name: str
    artists: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "artists": self.artists}


@dataclass
class Track:
    """Catalog track plus the fields the engine derives for it."""
    id: str
    name: str = ""
    artists: List[Artist] = field(default_factory=list)
    album: Album = field(default_factory=Album)
    uri: str = ""
    preview_url: Optional[str] = None
    popularity: int = 0

    # Derived by the engine
    audio_features: Optional[AudioFeatures] = None
    heard_samples: List[HeardSample] = field(default_factory=list)
    similarity: Optional[float] = None

    def __post_init__(self):
        if not self.uri and self.id:
            self.uri = f"spotify:track:{self.id}"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Track":
        """
        Build a track from an API payload or a stored liked-track dict.

        Args:
            data: Track dictionary

        Returns:
            Track instance
        """
        features = data.get('audio_features') or data.get('audioFeatures')
        return cls(
            id=data.get('id') or "",
            name=data.get('name') or "",
            artists=[Artist.from_api(a) for a in data.get('artists') or [] if a],
            album=Album.from_api(data.get('album')),
            uri=data.get('uri') or "",
            preview_url=data.get('preview_url'),
            popularity=data.get('popularity') or 0,
            audio_features=AudioFeatures.from_api(features),
        )

    @property
    def artist_ids(self) -> List[str]:
        return [a.id for a in self.artists if a.id]

    @property
    def artist_names(self) -> List[str]:
        return [a.name for a in self.artists if a.name]

    @property
    def artist_display(self) -> str:
        return ", ".join(self.artist_names)

    def to_heard_sample(self) -> HeardSample:
        return HeardSample(id=self.id, name=self.name, artists=self.artist_display)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "artists": [a.to_dict() for a in self.artists],
            "album": self.album.to_dict(),
            "uri": self.uri,
            "preview_url": self.preview_url,
            "popularity": self.popularity,
            "audio_features": self.audio_features.to_dict() if self.audio_features else None,
            "heard_samples": [s.to_dict() for s in self.heard_samples],
            "similarity": None if self.similarity is None else round(self.similarity, 4),
        }


@dataclass
class TasteProfile:
    """Long-term taste derived from listening history."""
    audio_profile: Dict[str, float] = field(default_factory=dict)
    seed_tracks: List[str] = field(default_factory=list)
    top_artists: List[str] = field(default_factory=list)
    top_genres: List[str] = field(default_factory=list)

    @property
    def seed_artists(self) -> List[str]:
        return self.top_artists[:MAX_SEEDS]

    @property
    def has_seeds(self) -> bool:
        return bool(self.seed_tracks or self.top_artists or self.top_genres)


@dataclass
class FeedbackProfile:
    """Taste derived only from tracks liked in the current session."""
    audio_profile: Dict[str, float] = field(default_factory=dict)
    seed_tracks: List[str] = field(default_factory=list)
    seed_artists: List[str] = field(default_factory=list)
    top_genres: List[str] = field(default_factory=list)


def normalize_genre(genre: str) -> str:
    """Genre tag in seed form: lowercase, words joined by hyphens."""
    return "-".join(genre.lower().split())


def average_audio_profile(features: Iterable[Optional[AudioFeatures]]) -> Dict[str, float]:
    """
    Feature-wise mean over tracks that report each feature.

    A feature no track reports is left out rather than defaulted to zero.

    Args:
        features: Audio feature vectors, None entries allowed

    Returns:
        Mapping of feature name -> mean value
    """
    present = [f for f in features if f is not None]
    if not present:
        return {}

    matrix = np.array([f.to_vector() for f in present])
    counts = np.sum(~np.isnan(matrix), axis=0)
    sums = np.nansum(matrix, axis=0)

    profile = {}
    for i, feature in enumerate(AUDIO_FEATURES):
        if counts[i] > 0:
            profile[feature] = float(sums[i] / counts[i])
    return profile


def extract_top_genres(artists: Iterable[Artist], limit: int = MAX_SEEDS) -> List[str]:
    """
    Most common genre tags across artists.

    Ties keep the order in which tags were first seen.
    """
    genre_counts = Counter()
    for artist in artists:
        genre_counts.update(normalize_genre(g) for g in artist.genres if g)
    return [g for g, _ in genre_counts.most_common(limit)]


def build_feedback_profile(liked_tracks: Optional[List[Track]]) -> Optional[FeedbackProfile]:
    """
    Build a feedback profile from this session's liked tracks.

    Args:
        liked_tracks: Liked tracks in the order they were liked

    Returns:
        FeedbackProfile, or None when nothing was liked
    """
    if not liked_tracks:
        return None

    audio_profile = average_audio_profile(t.audio_features for t in liked_tracks)

    recent_ids = []
    for track in reversed(liked_tracks):
        if track.id and track.id not in recent_ids:
            recent_ids.append(track.id)
        if len(recent_ids) >= MAX_SEEDS:
            break

    artist_counts = Counter()
    genre_counts = Counter()
    for track in liked_tracks:
        artist_counts.update(track.artist_ids)
        for artist in track.artists:
            genre_counts.update(normalize_genre(g) for g in artist.genres if g)

    return FeedbackProfile(
        audio_profile=audio_profile,
        seed_tracks=recent_ids,
        seed_artists=[a for a, _ in artist_counts.most_common(MAX_SEEDS)],
        top_genres=[g for g, _ in genre_counts.most_common(MAX_SEEDS)],
    )
