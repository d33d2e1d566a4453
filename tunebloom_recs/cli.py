"""
Command-Line Interface for TuneBloom Recs
=========================================

Usage:
    tunebloom-recs recommend [options]
    tunebloom-recs like <track>
    tunebloom-recs dislike <track>
    tunebloom-recs undo <track>
    tunebloom-recs liked [--clear]
    tunebloom-recs export [--name NAME] [--private]

Examples:
    tunebloom-recs recommend -n 20
    tunebloom-recs recommend -n 20 --vibe-shift 3 --format simple
    tunebloom-recs like https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC
    tunebloom-recs export --name "Friday Finds"
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List

from .config import (
    DISLIKED_TRACKS_KEY,
    EXCLUSION_DB_NAME,
    LIKED_TRACKS_KEY,
    NUM_RECOMMENDATIONS,
)
from .exclusions import SQLiteExclusionStore
from .features import Track
from .playlist import PlaylistExporter, TrackListStore
from .profile import fetch_audio_features
from .recommender import RecommendationEngine
from .utils import LocalStore, default_state_dir, normalize_track_id

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='tunebloom-recs',
        description='TuneBloom Recs - swipe-style Spotify discovery',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  SPOTIFY_CLIENT_ID      Your Spotify API client ID
  SPOTIFY_CLIENT_SECRET  Your Spotify API client secret
  SPOTIFY_REDIRECT_URI   OAuth redirect URI registered for the app
  TUNEBLOOM_STATE_DIR    Where liked tracks and exclusions are kept
        """
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    recommend = subparsers.add_parser('recommend', help='Generate a deck of recommendations')
    recommend.add_argument(
        '-n', '--num',
        type=int,
        default=NUM_RECOMMENDATIONS,
        help=f'Number of recommendations (default: {NUM_RECOMMENDATIONS})'
    )
    recommend.add_argument(
        '--vibe-shift',
        type=int,
        default=0,
        help='Refresh counter; each step nudges the target vibe (default: 0)'
    )
    recommend.add_argument(
        '-o', '--output',
        type=str,
        default=None,
        help='Output file path (default: print to stdout)'
    )
    recommend.add_argument(
        '--format',
        type=str,
        choices=['json', 'csv', 'simple'],
        default='json',
        help='Output format (default: json)'
    )

    for name, help_text in (
        ('like', 'Like a track (adds it to the temporary playlist)'),
        ('dislike', 'Dislike a track'),
        ('undo', 'Undo a like or dislike (the track stays hidden from later decks)'),
    ):
        swipe = subparsers.add_parser(name, help=help_text, description=help_text)
        swipe.add_argument('track', type=str, help='Spotify track URL, URI, or ID')

    liked = subparsers.add_parser('liked', help='Show the temporary playlist')
    liked.add_argument('--clear', action='store_true', help='Empty the temporary playlist')

    export = subparsers.add_parser('export', help='Create a Spotify playlist from liked tracks')
    export.add_argument('--name', type=str, default=None, help='Playlist name')
    export.add_argument('--private', action='store_true', help='Create a private playlist')

    return parser


def configure_logging(verbose: bool) -> None:
    """Single stderr handler; DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def format_output(tracks: List[Track], fmt: str) -> str:
    """Format a deck based on requested format."""
    if fmt == 'csv':
        lines = ['track_id,track_name,artists,distance,heard_like']
        for track in tracks:
            artists = ';'.join(track.artist_names).replace('"', '""')
            name = track.name.replace('"', '""')
            heard = ';'.join(s.name for s in track.heard_samples).replace('"', '""')
            lines.append(f'{track.id},"{name}","{artists}",{track.similarity:.4f},"{heard}"')
        return '\n'.join(lines)

    elif fmt == 'simple':
        lines = [f"Top {len(tracks)} Recommendations:", "-" * 50]
        for i, track in enumerate(tracks, 1):
            lines.append(f"{i:2}. {track.name}")
            lines.append(f"    Artists: {track.artist_display}")
            lines.append(f"    Distance: {track.similarity:.4f}")
            if track.heard_samples:
                known = ', '.join(f"{s.name} ({s.artists})" for s in track.heard_samples)
                lines.append(f"    Like: {known}")
            lines.append(f"    Track ID: {track.id}")
            lines.append("")
        return '\n'.join(lines)

    return json.dumps([t.to_dict() for t in tracks], indent=2)


def validate_environment() -> bool:
    """Check if required environment variables are set."""
    client_id = os.environ.get('SPOTIFY_CLIENT_ID') or os.environ.get('SPOTIPY_CLIENT_ID')
    client_secret = os.environ.get('SPOTIFY_CLIENT_SECRET') or os.environ.get('SPOTIPY_CLIENT_SECRET')

    if not client_id or not client_secret:
        print("Error: Spotify API credentials not found!", file=sys.stderr)
        print("", file=sys.stderr)
        print("Please set the following environment variables:", file=sys.stderr)
        print("  SPOTIFY_CLIENT_ID=your_client_id", file=sys.stderr)
        print("  SPOTIFY_CLIENT_SECRET=your_client_secret", file=sys.stderr)
        print("", file=sys.stderr)
        print("Get credentials at: https://developer.spotify.com/dashboard", file=sys.stderr)
        return False

    return True


def _fetch_track(spotify, track_input: str) -> Track:
    track = Track.from_api(spotify.get_track(normalize_track_id(track_input)))
    track.audio_features = fetch_audio_features(spotify, [track.id]).get(track.id)
    return track


def run_command(args, spotify, state_dir: str) -> int:
    """Execute a parsed command against a Spotify client."""
    local_store = LocalStore(state_dir)
    liked = TrackListStore(local_store, LIKED_TRACKS_KEY)
    disliked = TrackListStore(local_store, DISLIKED_TRACKS_KEY)

    engine = RecommendationEngine(
        spotify,
        exclusion_store=SQLiteExclusionStore(str(Path(state_dir) / EXCLUSION_DB_NAME)),
        local_store=local_store,
        liked_store=liked,
    )

    if args.command == 'recommend':
        deck = engine.generate_recommendations(
            args.num,
            liked_tracks=liked.get_tracks(),
            vibe_shift=args.vibe_shift,
        )
        output = format_output(deck, args.format)
        if args.output:
            with open(args.output, 'w', encoding='utf-8') as f:
                f.write(output)
            print(f"Recommendations saved to: {args.output}")
        else:
            print(output)

    elif args.command in ('like', 'dislike'):
        track = _fetch_track(spotify, args.track)
        target = liked if args.command == 'like' else disliked
        target.add_track(track)
        engine.exclude_track(track.id)
        print(f"{args.command.capitalize()}d: {track.name} - {track.artist_display}")

    elif args.command == 'undo':
        track_id = normalize_track_id(args.track)
        liked.remove_track(track_id)
        disliked.remove_track(track_id)
        engine.remove_exclusion(track_id)
        print(f"Undone: {track_id}")
        print("The swipe stays recorded, so this track will not reappear in decks")

    elif args.command == 'liked':
        if args.clear:
            liked.clear()
            disliked.clear()
            print("Temporary playlist cleared")
        else:
            tracks = liked.get_tracks()
            for i, track in enumerate(tracks, 1):
                print(f"{i:2}. {track.name} - {track.artist_display} ({track.id})")
            print(f"{len(tracks)} liked tracks")

    elif args.command == 'export':
        playlist = PlaylistExporter(spotify).export(
            liked.get_tracks(),
            name=args.name,
            public=not args.private,
        )
        print(f"Playlist created on Spotify: \"{playlist.get('name')}\"")

    return 0


def main(argv=None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    needs_spotify = not (args.command == 'liked' or args.command == 'undo')
    if needs_spotify and not validate_environment():
        return 1

    try:
        spotify = None
        if needs_spotify:
            # Import SpotifyClient here to handle import errors gracefully
            from .spotify_client import SpotifyClient
            spotify = SpotifyClient()

        return run_command(args, spotify, default_state_dir())

    except Exception as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
