"""Command that takes an anonymised snapshot of an account.

Raw /sync results are stored in sync_snapshot.json; the anonymised output is
written to stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from .anon import AnonMappings, Snapshot
from .convert import convert_to_blueprint
from .redact import REDACT_RULES, redact
from .sync import SyncError, load_sync_data

_logger = logging.getLogger(__name__)

IMAGE_URI = "complement-dendrite:latest"
SYNC_SNAPSHOT_FILE = "sync_snapshot.json"
SERVER_NAME = "hs1"


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="account-snapshot",
        description="Take an anonymised snapshot of a Matrix account.",
    )
    parser.add_argument("-token", "--token", default="", help="Account access token")
    parser.add_argument("-url", "--url", default="https://matrix.org", help="HS URL")
    parser.add_argument(
        "-user",
        "--user",
        default="",
        help="Matrix User ID, needed to configure blueprints correctly for account data",
    )
    parser.add_argument(
        "-from-anon",
        "--from-anon",
        dest="from_anon",
        default="",
        help="If set, loads anonymous snapshot from file and then produces blueprint",
    )
    parser.add_argument(
        "-anon-only",
        "--anon-only",
        dest="anon_only",
        action="store_true",
        help="If set, outputs an anonymous sync output only, not a blueprint",
    )
    return parser


def _fatal(message: str) -> int:
    print(f"FATAL: {message}", file=sys.stderr)
    return 1


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _usage(parser: argparse.ArgumentParser) -> str:
    events_handled = "".join(f"  {ev_type}\n" for ev_type in REDACT_RULES)
    return (
        "Capture an anonymous snapshot of this account.\n"
        "User name is required to map DM rooms correctly.\n"
        f"/sync output is stored in '{SYNC_SNAPSHOT_FILE}'\n"
        "Anonymised output is written to stdout\n\n"
        "Usage: ./account_snapshot -token MDA.... -user @alice:matrix.org > output.json\n\n"
        "Currently handles the following events:\n"
        f"{events_handled}\n\n"
        f"{parser.format_help()}"
    )


def main(argv: list[str] | None = None) -> int:
    """Run the command; returns the process exit status."""
    parser = _parser()
    args = parser.parse_args(argv)

    if args.from_anon:
        try:
            with open(args.from_anon, encoding="utf-8") as fh:
                data = json.load(fh)
        except OSError as exc:
            return _fatal(f"Failed to open anonymous snapshot: {exc}")
        except ValueError as exc:
            return _fatal(f"Failed to read anonymous snapshot as JSON: {exc}")
        try:
            snapshot = Snapshot.from_dict(data)
        except (ValueError, TypeError, AttributeError) as exc:
            return _fatal(f"Failed to read anonymous snapshot as JSON: {exc}")
    else:
        if not args.token or not args.user:
            sys.stderr.write(_usage(parser))
            return 1
        try:
            sync_data = load_sync_data(args.url, args.token, SYNC_SNAPSHOT_FILE)
        except SyncError as exc:
            return _fatal(f"LoadSyncData {exc}")
        mappings = AnonMappings(single_server_name=SERVER_NAME)
        snapshot = redact(sync_data, mappings)
        snapshot.user_id = mappings.user(args.user)
        if args.anon_only:
            _print_json(snapshot.to_dict())
            return 0

    blueprint = convert_to_blueprint(snapshot, SERVER_NAME)
    _print_json({"blueprint": blueprint.to_dict(), "base_image_uri": IMAGE_URI})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())