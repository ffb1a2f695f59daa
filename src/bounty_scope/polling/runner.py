"""
Purpose: One platform poll run: list, fetch, filter, diff, persist and report.
Constraints: Glue only; fetching, diffing and storage live in their own modules.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from bounty_scope.core.categories import category_filter, normalize_category
from bounty_scope.core.config_models import PollSettings
from bounty_scope.core.errors import BountyScopeError
from bounty_scope.core.metrics import get_metrics
from bounty_scope.core.models import AuthConfig, ChangeEvent, ChangeKind, PollOptions, ProgramData, Snapshot
from bounty_scope.core.storage.change_log import append_changes
from bounty_scope.core.storage.snapshot_store import SnapshotStore
from bounty_scope.output import ScopeEmitter
from bounty_scope.platforms.base import Poller
from bounty_scope.polling.change_detector import ChangeDetector
from bounty_scope.polling.orchestrator import PollMode, PollOrchestrator, ProgramFailure, resolve_handles

logger = logging.getLogger(__name__)


@dataclass
class PlatformResult:
    platform: str
    programs: List[ProgramData] = field(default_factory=list)
    events: List[ChangeEvent] = field(default_factory=list)
    failures: List[ProgramFailure] = field(default_factory=list)
    error: Optional[BaseException] = None
    first_run: bool = False
    suspected_wipe: bool = False
    skipped_programs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def filter_program(program: ProgramData, categories: str) -> ProgramData:
    """Keep only the elements whose unified category passes the filter."""
    selected = category_filter(categories)
    if selected is None:
        return program

    def _keep(element) -> bool:
        return element.is_placeholder or normalize_category(element.category, element.target) in selected

    return ProgramData(
        url=program.url,
        in_scope=[e for e in program.in_scope if _keep(e)],
        out_of_scope=[e for e in program.out_of_scope if _keep(e)],
    )


def event_selected(event: ChangeEvent, categories: str) -> bool:
    if event.kind is ChangeKind.PROGRAM_REMOVED:
        return True
    selected = category_filter(categories)
    return selected is None or event.category in selected


def poll_platform(
    poller: Poller,
    options: PollOptions,
    settings: Optional[PollSettings] = None,
    store: Optional[SnapshotStore] = None,
    known_handles: Iterable[str] = (),
    emitter: Optional[ScopeEmitter] = None,
    ignored_programs: Iterable[str] = (),
    credentials: Optional[AuthConfig] = None,
    change_log: Optional[Path] = None,
) -> PlatformResult:
    """Poll one platform end to end.

    Without a store the run streams each program to `emitter` as soon as it
    is fetched. With a store the run diffs against the persisted snapshot,
    saves the new baseline under the store lock, appends events to
    `change_log` and emits them, except on the first run.
    """
    settings = settings or PollSettings()
    platform = poller.name
    result = PlatformResult(platform=platform)
    category_filter(options.categories)  # reject unknown filter names before any I/O

    try:
        if credentials is not None:
            poller.authenticate(credentials)
        with store.lock() if store is not None else nullcontext():
            _run(poller, options, settings, store, known_handles, emitter, ignored_programs, change_log, result)
    except BountyScopeError as exc:
        logger.error("%s: poll failed: %s", platform, exc)
        result.error = exc
    return result


def _run(
    poller: Poller,
    options: PollOptions,
    settings: PollSettings,
    store: Optional[SnapshotStore],
    known_handles: Iterable[str],
    emitter: Optional[ScopeEmitter],
    ignored_programs: Iterable[str],
    change_log: Optional[Path],
    result: PlatformResult,
) -> None:
    platform = poller.name
    previous: Optional[Snapshot] = store.load_snapshot(platform) if store is not None else None
    result.first_run = store is not None and previous is None
    if result.first_run:
        logger.info("First poll for %s, populating snapshot", platform)

    poller.prime(previous)
    known = list(known_handles)
    if previous is not None:
        known.extend(previous.handle_for(url) for url in previous.programs)
    listed, handles = resolve_handles(poller, options, known)
    if not listed and previous is not None and previous.program_count > settings.wipe_threshold:
        logger.error(
            "%s: platform listed 0 programs but %d are persisted; skipping this run",
            platform,
            previous.program_count,
        )
        result.suspected_wipe = True
        return

    listed_set = set(listed)

    ignored = set(ignored_programs)
    on_program = None
    if store is None and emitter is not None:
        def on_program(program: ProgramData) -> None:
            if program.url not in ignored:
                emitter.emit_program(filter_program(program, options.categories))

    mode = PollMode.FAIL_FAST if settings.fail_fast else PollMode.BEST_EFFORT
    orchestrator = PollOrchestrator(poller, concurrency=settings.concurrency, mode=mode, on_program=on_program)
    polled = orchestrator.run(handles, options)
    result.failures = polled.failures
    if polled.error is not None:
        result.error = polled.error
        result.programs = polled.programs
        return

    programs: Dict[str, ProgramData] = {}
    url_handles: Dict[str, str] = {}
    for program in polled.programs:
        handle = polled.program_handles.get(program.url, program.url)
        if program.url in ignored or handle in ignored:
            continue
        if program.is_empty and handle not in listed_set:
            # Known only from an earlier run and now gone upstream.
            logger.info("%s: program %s is no longer listed", platform, program.url)
            continue
        if settings.skip_empty and program.is_empty and (previous is None or program.url not in previous.programs):
            logger.debug("%s: skipping empty program %s", platform, program.url)
            continue
        programs[program.url] = program
        url_handles[program.url] = handle

    if previous is not None:
        # Failed fetches and ignored programs keep their persisted scope.
        failed = set(polled.failed_handles)
        for url, program in previous.programs.items():
            if url in programs:
                continue
            handle = previous.handle_for(url)
            if handle in failed or url in ignored or handle in ignored:
                programs[url] = program
                url_handles[url] = handle

    result.programs = list(programs.values())
    if store is None:
        result.programs = [filter_program(p, options.categories) for p in result.programs]
        return

    fresh = Snapshot(platform=platform, programs=programs, handles=url_handles)
    diff = ChangeDetector(wipe_threshold=settings.wipe_threshold).diff(platform, previous, fresh)
    result.suspected_wipe = diff.suspected_wipe
    result.skipped_programs = diff.skipped_programs
    if not diff.should_persist or diff.baseline is None:
        return

    if diff.first_run:
        store.save_snapshot(platform, diff.baseline)
        return

    # The baseline only advances once the events are logged.
    if change_log is not None and diff.events:
        append_changes(change_log, diff.events)
    store.save_snapshot(platform, diff.baseline)

    events = [e for e in diff.events if event_selected(e, options.categories)]
    result.events = events
    metrics = get_metrics()
    for event in events:
        metrics.record_change(platform, event.kind.value)
        if emitter is not None:
            emitter.emit_change(event)
    logger.info("%s: %d change(s)", platform, len(events))
