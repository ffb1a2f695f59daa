#!/usr/bin/env python3
"""
Unified CLI entrypoint with subcommands.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC = REPO_ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from bounty_scope.core.categories import category_filter  # noqa: E402
from bounty_scope.core.config import ConfigManager  # noqa: E402
from bounty_scope.core.logging import setup_logger  # noqa: E402
from bounty_scope.core.models import PollOptions  # noqa: E402
from bounty_scope.core.storage.change_log import read_changes  # noqa: E402
from bounty_scope.core.storage.snapshot_store import JsonSnapshotStore  # noqa: E402
from bounty_scope.output import ScopeEmitter, format_logged_change, validate_fields  # noqa: E402
from bounty_scope.platforms.registry import init_platforms  # noqa: E402
from bounty_scope.polling.runner import poll_platform  # noqa: E402

logger = logging.getLogger("bounty_scope.cli")

# Platforms polled when --platform is not given; immunefi needs no credentials.
DEFAULT_PLATFORMS = ("h1", "bc", "it", "ywh", "immunefi")
PUBLIC_PLATFORMS = ("immunefi", "test")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bounty-scope", description="Bug bounty scope poller")
    parser.add_argument("--config-dir", help="Directory holding settings.json, rate_limits.json, credentials.env")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    poll = sub.add_parser("poll", help="Fetch program scopes; with --db, report changes since the last poll")
    poll.add_argument("--platform", action="append", default=[], help="Platform to poll (repeatable): h1, bc, it, ywh, immunefi, test")
    poll.add_argument("--db", action="store_true", help="Persist snapshots and print changes instead of scope")
    poll.add_argument("--store-dir", help="Snapshot directory (implies --db)")
    poll.add_argument("--change-log", help="CSV change log path")
    poll.add_argument("--concurrency", type=int, help="Worker threads per platform")
    poll.add_argument("--fail-fast", action="store_true", help="Abort a platform on its first program error")
    poll.add_argument("--category", default="all", help="Category filter (all, url, wildcard, cidr, mobile, ...)")
    poll.add_argument("--oos", action="store_true", help="Also print out-of-scope elements")
    poll.add_argument("-o", "--output", default="tu", help="Output fields: t=target d=description c=category u=program url")
    poll.add_argument("-d", "--delimiter", default=" ", help="Field delimiter")
    poll.add_argument("-b", "--bbp-only", action="store_true", help="Only programs that pay bounties")
    poll.add_argument("-p", "--private-only", action="store_true", help="Only private programs")

    changes = sub.add_parser("changes", help="Show recent scope changes")
    changes.add_argument("--change-log", help="CSV change log path")
    changes.add_argument("--platform", help="Only changes for this platform")
    changes.add_argument("--limit", type=int, default=50, help="Number of recent changes to show")
    return parser


def _has_credentials(config: ConfigManager, platform: str) -> bool:
    if platform in PUBLIC_PLATFORMS:
        return True
    return bool(config.credentials_for(platform).token)


def cmd_poll(args: argparse.Namespace, config: ConfigManager) -> int:
    settings = config.poll_settings.model_copy()
    if args.concurrency:
        settings.concurrency = max(1, args.concurrency)
    if args.fail_fast:
        settings.fail_fast = True

    options = PollOptions(
        private_only=args.private_only,
        bounty_only=args.bbp_only,
        categories=args.category,
        include_oos=args.oos,
    )
    emitter = ScopeEmitter(fields=args.output, delimiter=args.delimiter, include_oos=args.oos)

    store = None
    change_log = None
    if args.db or args.store_dir:
        store = JsonSnapshotStore(config.resolve_path(args.store_dir or settings.store_dir))
        change_log = config.resolve_path(args.change_log or settings.change_log)

    registry = init_platforms()
    explicit = bool(args.platform)
    platforms: List[str] = args.platform or list(DEFAULT_PLATFORMS)
    exit_code = 0
    for name in platforms:
        if registry.get(name) is None:
            logger.error("Unknown platform: %s", name)
            exit_code = 1
            continue
        if not _has_credentials(config, name):
            if explicit:
                logger.error("No credentials configured for %s", name)
                exit_code = 1
            else:
                logger.info("Skipping %s: credentials not found in config", name)
            continue

        credentials = config.credentials_for(name)
        interval = config.rate_limits.intervals.get(name)
        poller = registry.create(name, interval=interval, policy=config.retry_policy(), proxy=credentials.proxy)
        result = poll_platform(
            poller,
            options,
            settings,
            store=store,
            emitter=emitter,
            ignored_programs=settings.ignored_programs.get(name, []),
            credentials=credentials,
            change_log=change_log,
        )
        if result.error is not None:
            logger.error("%s: %s", name, result.error)
            exit_code = 1
        elif result.suspected_wipe:
            logger.warning("%s: suspected scope wipe, snapshot left untouched", name)
        for failure in result.failures:
            logger.warning("%s: %s failed: %s", name, failure.handle, failure.error)
    return exit_code


def cmd_changes(args: argparse.Namespace, config: ConfigManager) -> int:
    path = config.resolve_path(args.change_log or config.poll_settings.change_log)
    if not path.exists():
        logger.error("Change log not found: %s", path)
        return 1
    for row in read_changes(path, platform=args.platform, limit=args.limit):
        print(format_logged_change(row))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "poll":
        try:
            validate_fields(args.output)
            category_filter(args.category)
        except ValueError as exc:
            parser.error(str(exc))

    config = ConfigManager(Path(args.config_dir) if args.config_dir else None).load_all()
    setup_logger("bounty_scope", args.log_level or config.log_level)

    if args.command == "poll":
        return cmd_poll(args, config)
    if args.command == "changes":
        return cmd_changes(args, config)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
