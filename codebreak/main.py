"""Code ∧ Break application entry point.

Supports two modes:
  - GUI mode (default): launches the system tray application
  - Utility mode: exports or imports profiles and exits

Usage:
    python -m codebreak.main                          # GUI mode
    python -m codebreak.main --profile "Long Work"    # start with a profile
    python -m codebreak.main --export backup.json     # write a profile backup
    python -m codebreak.main --import backup.txt      # merge profiles from a backup
"""

import argparse
import logging
import sys

from codebreak.core.events import EventBus
from codebreak.core.registry import ProfileRegistry
from codebreak.persistence.store import EXPORT_FORMATS, ProfileStore

__version__ = "1.0"

APP_TITLE = "Code ∧ Break"


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="codebreak",
        description=f"{APP_TITLE} - Pomodoro-style break reminders for developers",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"{APP_TITLE} {__version__}",
    )
    parser.add_argument(
        "-m", "--minimized",
        action="store_true",
        help="Start minimized (do not open the dashboard)",
    )
    parser.add_argument(
        "--no-tray",
        action="store_true",
        help="Run without a system tray icon",
    )
    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "-p", "--profile",
        metavar="NAME",
        help="Select this profile on startup",
    )
    parser.add_argument(
        "--auto-start",
        action="store_true",
        help="Start the timer immediately",
    )
    parser.add_argument(
        "--data-dir",
        metavar="PATH",
        help="Directory holding profiles.json and settings.json",
    )

    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--export",
        metavar="PATH",
        help="Export all profiles to PATH and exit",
    )
    group.add_argument(
        "--import",
        dest="import_path",
        metavar="PATH",
        help="Import profiles from a JSON or text backup and exit",
    )
    parser.add_argument(
        "--format",
        choices=EXPORT_FORMATS,
        default="json",
        help="Export format (default: json)",
    )
    return parser


def _load_registry(data_dir: str | None) -> tuple[ProfileStore, ProfileRegistry]:
    store = ProfileStore(data_dir)
    registry = ProfileRegistry(store, EventBus())
    registry.load()
    return store, registry


def _export_profiles(data_dir: str | None, path: str, fmt: str) -> int:
    _, registry = _load_registry(data_dir)
    try:
        out = registry.export_profiles(path, fmt)
    except OSError as exc:
        print(f"Export failed: {exc}", file=sys.stderr)
        return 1
    print(f"Exported {len(registry.profiles)} profiles to {out}")
    return 0


def _import_profiles(data_dir: str | None, path: str) -> int:
    store, registry = _load_registry(data_dir)
    result = registry.import_profiles(path)
    print(result.message)
    for issue in result.issues:
        print(f"  - {issue}")
    if not result.success:
        return 1

    profiles, settings = registry.commit()
    try:
        store.save_profiles(profiles)
        store.save_settings(settings)
    except OSError as exc:
        print(f"Saving imported profiles failed: {exc}", file=sys.stderr)
        return 1
    return 0


def main(args: list[str] | None = None) -> int:
    """Entry point for Code ∧ Break.

    When *args* is ``None`` the arguments are read from ``sys.argv``.
    Returns the process exit code.
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if parsed.export:
        return _export_profiles(parsed.data_dir, parsed.export, parsed.format)
    if parsed.import_path:
        return _import_profiles(parsed.data_dir, parsed.import_path)

    # GUI mode: import here to avoid pulling in pystray/Flask for CLI usage
    from codebreak.ui.app import CodeBreakApp, StartupOptions

    options = StartupOptions(
        minimized=parsed.minimized,
        use_tray=not parsed.no_tray,
        profile=parsed.profile,
        auto_start=parsed.auto_start,
    )
    app = CodeBreakApp(parsed.data_dir, options)
    app.start()
    return 0


if __name__ == "__main__":
    sys.exit(main())
