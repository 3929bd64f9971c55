#!/usr/bin/env python3
"""
Album Tag Resolver CLI

Interactive resolution of album folders against online catalogs.

Usage:
    python cli.py <command> [options]

Commands:
    resolve <path>           Match album folders, write tags, rename folders
    providers                List configured providers and their shortcuts
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))


def cmd_resolve(args):
    """Resolve every album folder under a path."""
    from orchestrator.config import ConfigManager
    from orchestrator.orchestrator import AlbumResolver

    config = ConfigManager(args.config)
    resolver = AlbumResolver(
        config,
        provider=args.provider,
        find_mode=args.mode,
        strategy=args.strategy,
        non_interactive=True if args.non_interactive else None,
        preview=True if args.preview else None,
        album_artist=args.album_artist
    )
    summary = resolver.process_path(args.path)

    if summary.get('status') == 'error':
        print(f"Error: {summary['error']}", file=sys.stderr)
        return 1

    stats = summary.get('stats', {})
    print(f"\n=== Resolve Results ===")
    print(f"Albums found: {stats.get('albums_found', 0)}")
    print(f"Done: {stats.get('albums_done', 0)}")
    print(f"Skipped: {stats.get('albums_skipped', 0)}")
    print(f"Failed: {stats.get('albums_failed', 0)}")
    print(f"Tracks saved: {stats.get('tracks_saved', 0)}")
    if resolver.preview:
        print("(Preview - no changes made)")
    return 0


def cmd_providers(args):
    """List configured providers."""
    from orchestrator.config import ConfigManager
    from sources.registry import SourceRegistry

    registry = SourceRegistry.from_config(ConfigManager(args.config))
    print(f"\n=== Providers ===")
    for name in registry.available:
        default = " (default)" if name == registry.default else ""
        print(f"  {registry.shortcut_for(name) or '':5s} {name}{default}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='music-resolve',
        description='Album Tag Resolver CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--config', default='music-config.yaml', help='Path to music-config.yaml')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # resolve command
    resolve_parser = subparsers.add_parser('resolve', help='Resolve album folders interactively')
    resolve_parser.add_argument('path', help='Album, artist or library folder')
    resolve_parser.add_argument('--provider', help='Provider to start with (musicbrainz, spotify, discogs, itunes)')
    resolve_parser.add_argument('--mode', choices=['quick', 'artist-first'], help='Search mode')
    resolve_parser.add_argument('--strategy', help='Initial pairing strategy (order, duration, track, ...)')
    resolve_parser.add_argument('--non-interactive', action='store_true',
                                help='Never prompt; skip albums that need a choice')
    resolve_parser.add_argument('--preview', action='store_true', help='Preview changes without applying')
    resolve_parser.add_argument('--album-artist', help='Album artist override for every album')
    resolve_parser.set_defaults(func=cmd_resolve)

    # providers command
    providers_parser = subparsers.add_parser('providers', help='List configured providers')
    providers_parser.set_defaults(func=cmd_providers)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled.")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
