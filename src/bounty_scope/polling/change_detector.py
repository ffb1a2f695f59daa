"""
Purpose: Compare a persisted snapshot with a fresh one and report scope changes.
Constraints: Pure and stateless; never raises for data reasons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bounty_scope.core.categories import normalize_category
from bounty_scope.core.models import ChangeEvent, ChangeKind, ProgramData, ScopeElement, Snapshot

logger = logging.getLogger(__name__)

DEFAULT_WIPE_THRESHOLD = 10

EntryKey = Tuple[str, str]


@dataclass
class DiffResult:
    events: List[ChangeEvent] = field(default_factory=list)
    first_run: bool = False
    suspected_wipe: bool = False
    skipped_programs: List[str] = field(default_factory=list)
    baseline: Optional[Snapshot] = None
    should_persist: bool = True


def entry_key(element: ScopeElement) -> EntryKey:
    return element.target, normalize_category(element.category, element.target)


def index_entries(program: ProgramData) -> Dict[EntryKey, Tuple[ScopeElement, bool]]:
    """Map each comparable entry to (element, in_scope); in-scope entries win ties."""
    entries: Dict[EntryKey, Tuple[ScopeElement, bool]] = {}
    for elements, in_scope in ((program.in_scope, True), (program.out_of_scope, False)):
        for element in elements:
            if element.is_placeholder or not element.target.strip():
                continue
            entries.setdefault(entry_key(element), (element, in_scope))
    return entries


class ChangeDetector:
    def __init__(self, wipe_threshold: int = DEFAULT_WIPE_THRESHOLD):
        self.wipe_threshold = wipe_threshold

    def diff(self, platform: str, previous: Optional[Snapshot], fresh: Snapshot) -> DiffResult:
        """Return the events turning `previous` into `fresh` and the snapshot to persist.

        A fresh snapshot with no programs against a previous one above the
        wipe threshold is treated as a broken poll: nothing is emitted and
        nothing should be persisted. A program whose fresh scope is empty
        while its persisted scope is not is skipped the same way and keeps
        its persisted data in the baseline.
        """
        if previous is None:
            return DiffResult(first_run=True, baseline=fresh, should_persist=True)

        if fresh.program_count == 0 and previous.program_count > self.wipe_threshold:
            logger.error(
                "%s: fresh poll has 0 programs but %d are persisted; refusing to apply it",
                platform,
                previous.program_count,
            )
            return DiffResult(suspected_wipe=True, baseline=previous, should_persist=False)

        events: List[ChangeEvent] = []
        skipped: List[str] = []
        baseline_programs: Dict[str, ProgramData] = dict(fresh.programs)
        baseline_handles: Dict[str, str] = dict(fresh.handles)

        for url in previous.programs:
            if url not in fresh.programs:
                events.append(ChangeEvent(kind=ChangeKind.PROGRAM_REMOVED, platform=platform, program_url=url))

        for url, new_program in fresh.programs.items():
            old_program = previous.programs.get(url)
            new_entries = index_entries(new_program)
            if old_program is None:
                events.extend(self._added(platform, url, new_entries))
                continue
            old_entries = index_entries(old_program)
            if not new_entries and old_entries:
                logger.warning(
                    "%s: potential scope wipe for program %s; keeping the persisted scope", platform, url
                )
                skipped.append(url)
                baseline_programs[url] = old_program
                if url in previous.handles:
                    baseline_handles.setdefault(url, previous.handles[url])
                continue
            events.extend(self._compare(platform, url, old_entries, new_entries))

        baseline = Snapshot(platform=platform, programs=baseline_programs, handles=baseline_handles)
        return DiffResult(events=events, skipped_programs=skipped, baseline=baseline, should_persist=True)

    # Helpers
    @staticmethod
    def _added(platform: str, url: str, entries: Dict[EntryKey, Tuple[ScopeElement, bool]]) -> List[ChangeEvent]:
        return [
            ChangeEvent(
                kind=ChangeKind.ADDED,
                platform=platform,
                program_url=url,
                target=target,
                category=category,
                in_scope=in_scope,
                new_value=element,
            )
            for (target, category), (element, in_scope) in entries.items()
        ]

    @staticmethod
    def _compare(
        platform: str,
        url: str,
        old_entries: Dict[EntryKey, Tuple[ScopeElement, bool]],
        new_entries: Dict[EntryKey, Tuple[ScopeElement, bool]],
    ) -> List[ChangeEvent]:
        events: List[ChangeEvent] = []
        for key, (new_el, new_in) in new_entries.items():
            target, category = key
            if key not in old_entries:
                events.append(
                    ChangeEvent(ChangeKind.ADDED, platform, url, target, category, new_in, new_value=new_el)
                )
                continue
            old_el, old_in = old_entries[key]
            if old_el.description != new_el.description or old_in != new_in or old_el.is_bbp != new_el.is_bbp:
                events.append(
                    ChangeEvent(ChangeKind.UPDATED, platform, url, target, category, new_in, old_el, new_el)
                )
        for key, (old_el, old_in) in old_entries.items():
            if key not in new_entries:
                target, category = key
                events.append(
                    ChangeEvent(ChangeKind.REMOVED, platform, url, target, category, old_in, old_value=old_el)
                )
        return events
