"""
Configuration and constants for the TuneBloom recommendation engine.
"""
import os
from dataclasses import dataclass, field
from typing import List, Tuple

# =============================================================================
# SPOTIFY API CONFIGURATION
# =============================================================================
SPOTIFY_CLIENT_ID = os.environ.get("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.environ.get("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI = os.environ.get("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8888/callback")

SPOTIFY_SCOPES = [
    "user-read-private",
    "user-read-email",
    "user-top-read",
    "user-read-recently-played",
    "playlist-read-private",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-library-read",
    "user-library-modify",
]

# =============================================================================
# LOCAL STATE
# =============================================================================
STATE_DIR = os.environ.get(
    "TUNEBLOOM_STATE_DIR",
    os.path.join(os.path.expanduser("~"), ".tunebloom"),
)
EXCLUSION_DB_NAME = "exclusions.db"

# =============================================================================
# AUDIO FEATURE CONFIGURATION
# =============================================================================
AUDIO_FEATURES = [
    "danceability",
    "energy",
    "valence",
    "tempo",
    "acousticness",
    "instrumentalness",
    "speechiness",
]

# Ranking distance is computed over these only
DISTANCE_FEATURES = [
    "danceability",
    "energy",
    "valence",
]

# Historical windows for top tracks, shortest first
TIME_RANGES = ("short_term", "medium_term", "long_term")

# Spotify caps seeds at 5 per recommendation request
MAX_SEEDS = 5


# =============================================================================
# EXCLUSION CONFIGURATION
# =============================================================================
@dataclass
class ExclusionConfig:
    """Bounds for the exclusion and listened sets."""
    # Past this size membership checks fail open
    max_exclusion_set_size: int = 4500

    # Most recent served ids kept in the local cache
    local_cache_limit: int = 800
    local_cache_key: str = "tunebloom_excluded_tracks"


# =============================================================================
# PROFILE CONFIGURATION
# =============================================================================
@dataclass
class ProfileConfig:
    """Limits for the taste profile build."""
    top_tracks_per_window: int = 50
    top_artists_limit: int = 20

    # Reference tracks sent to the audio-features endpoint
    max_reference_tracks: int = 120
    features_chunk_size: int = 50

    # Saved library pagination
    saved_tracks_page_size: int = 50
    saved_tracks_cap: int = 500

    recently_played_limit: int = 50

    # Playlist sampling (bounded to keep the build fast)
    playlists_scanned: int = 10
    playlist_page_size: int = 50
    per_playlist_cap: int = 100
    playlist_tracks_cap: int = 500

    heard_tracks_cap: int = 200


# =============================================================================
# CANDIDATE CONFIGURATION
# =============================================================================
@dataclass
class CandidateConfig:
    """Configuration for candidate fetching."""
    # Limits for batches A-D
    batch_limits: Tuple[int, int, int, int] = (30, 30, 25, 25)

    # Pause between recommendation batches (seconds)
    batch_delay: float = 0.1

    # Vibe shift: counter % cycle, scaled by step
    vibe_cycle: int = 5
    vibe_step: float = 0.05

    # Half-width of the energy range in batch C
    energy_window: float = 0.2

    features_chunk_size: int = 50

    fallback_queries: List[str] = field(default_factory=lambda: [
        "love", "night", "summer", "dance", "chill",
    ])
    default_genres: List[str] = field(default_factory=lambda: [
        "pop", "rock", "hip-hop", "electronic", "indie",
    ])
    fallback_search_limit: int = 20
    fallback_genre_limit: int = 30

    heard_samples_per_track: int = 3


# =============================================================================
# RANKING CONFIGURATION
# =============================================================================
@dataclass
class RankingConfig:
    """Configuration for ranking and liveness fallbacks."""
    # Below this many filtered candidates, fall back to the unfiltered pool
    min_filtered_candidates: int = 10

    # Distance assigned to tracks with no feature vector
    missing_distance: float = 999.0

    # Scores closer than this are ordered randomly
    tie_epsilon: float = 1e-4


@dataclass
class EngineConfig:
    """All engine settings in one place."""
    exclusions: ExclusionConfig = field(default_factory=ExclusionConfig)
    profile: ProfileConfig = field(default_factory=ProfileConfig)
    candidates: CandidateConfig = field(default_factory=CandidateConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)


DEFAULT_CONFIG = EngineConfig()

# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================
NUM_RECOMMENDATIONS = 50

# =============================================================================
# PLAYLIST EXPORT
# =============================================================================
LIKED_TRACKS_KEY = "tunebloom_temp_playlist"
DISLIKED_TRACKS_KEY = "tunebloom_temp_dislikes"
PLAYLIST_BASE_NAME = "TuneBloom Likes"
PLAYLIST_DESCRIPTION = "Tracks you liked while swiping in TuneBloom"
PLAYLIST_ADD_CHUNK_SIZE = 100
