"""
TuneBloom Recs - swipe-style Spotify discovery
==============================================

A recommendation engine that learns a listener's taste from their Spotify
history, serves decks of tracks they have not heard, and sharpens the
deck from likes made during the session.

Modules:
    - config: Configuration and constants
    - spotify_client: Spotify API wrapper
    - features: Data model and taste-profile math
    - exclusions: Already-heard tracking and persistence
    - profile: Taste profile builder
    - candidates: Candidate track fetching
    - heard_samples: "Similar to tracks you know" picks
    - scoring: Distance-based ranking
    - recommender: Main recommendation orchestrator
    - playlist: Liked tracks and playlist export
    - cli: Command-line interface
"""

__version__ = "1.0.0"
__author__ = "TuneBloom Team"
