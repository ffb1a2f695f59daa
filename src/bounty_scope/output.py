"""
Purpose: Render program scopes and change events as plain text lines.
Constraints: Presentation only; writes to the given stream.
"""

from __future__ import annotations

import sys
import threading
from typing import List, Mapping, Optional, TextIO

from bounty_scope.core.categories import normalize_category
from bounty_scope.core.models import ChangeEvent, ChangeKind, ProgramData, ScopeElement

OUTPUT_FIELDS = frozenset("tdcu")
OOS_PREFIX = "[OOS] "

_CHANGE_MARKERS = {
    ChangeKind.ADDED: "+",
    ChangeKind.REMOVED: "-",
    ChangeKind.UPDATED: "~",
}


def validate_fields(fields: str) -> str:
    """Return `fields` if every flag is one of t, d, c, u; raise ValueError otherwise."""
    if not fields:
        raise ValueError("At least one output field is required")
    unknown = sorted(set(fields) - OUTPUT_FIELDS)
    if unknown:
        raise ValueError(f"Invalid output flag(s): {''.join(unknown)} (use any of t, d, c, u)")
    return fields


def format_element(element: ScopeElement, url: str, fields: str, delimiter: str) -> str:
    parts = []
    for flag in fields:
        if flag == "t":
            parts.append("" if element.is_placeholder else element.target)
        elif flag == "d":
            parts.append(element.description)
        elif flag == "c":
            parts.append("" if element.is_placeholder else normalize_category(element.category, element.target))
        elif flag == "u":
            parts.append(url)
    if not any(parts):
        return ""
    return delimiter.join(parts)


def format_program(program: ProgramData, fields: str = "tu", delimiter: str = " ", include_oos: bool = False) -> List[str]:
    """One line per scope element; out-of-scope lines carry the [OOS] prefix."""
    validate_fields(fields)
    lines = []
    for element in program.in_scope:
        line = format_element(element, program.url, fields, delimiter)
        if line:
            lines.append(line)
    if include_oos:
        for element in program.out_of_scope:
            line = format_element(element, program.url, fields, delimiter)
            if line:
                lines.append(OOS_PREFIX + line)
    return lines


def format_change(event: ChangeEvent) -> str:
    if event.kind is ChangeKind.PROGRAM_REMOVED:
        return f"- Program removed: {event.platform}  {event.program_url}"
    scope_status = "" if event.in_scope else " [OOS]"
    marker = _CHANGE_MARKERS.get(event.kind, "?")
    line = f"{marker}  {event.platform}  {event.program_url}  {event.target}{scope_status}"
    if event.kind is ChangeKind.UPDATED and event.old_value and event.new_value:
        if event.old_value.description != event.new_value.description:
            line += f"  ({event.old_value.description!r} -> {event.new_value.description!r})"
    return line


def format_logged_change(row: Mapping[str, str]) -> str:
    """Render one change-log row the way the `changes` command prints it."""
    in_scope = row.get("in_scope", "1") not in ("0", "false", "False")
    target = row.get("target") or "-"
    return (
        f"{row.get('timestamp_utc', '')}  {row.get('kind', ''):<15}  {row.get('platform', '')}  "
        f"{row.get('program_url', '')}  {target}  in_scope={str(in_scope).lower()}"
    )


class ScopeEmitter:
    """Writes scope lines and change lines; safe to call from worker threads."""

    def __init__(
        self,
        fields: str = "tu",
        delimiter: str = " ",
        include_oos: bool = False,
        stream: Optional[TextIO] = None,
    ):
        self.fields = validate_fields(fields)
        self.delimiter = delimiter
        self.include_oos = include_oos
        self.stream = stream or sys.stdout
        self._lock = threading.Lock()

    def emit_program(self, program: ProgramData) -> None:
        lines = format_program(program, self.fields, self.delimiter, self.include_oos)
        if lines:
            self._write(lines)

    def emit_change(self, event: ChangeEvent) -> None:
        self._write([format_change(event)])

    def _write(self, lines: List[str]) -> None:
        with self._lock:
            self.stream.write("\n".join(lines) + "\n")
            self.stream.flush()


def emit_program(
    program: ProgramData,
    fields: str = "tu",
    delimiter: str = " ",
    include_oos: bool = False,
    stream: Optional[TextIO] = None,
) -> None:
    ScopeEmitter(fields, delimiter, include_oos, stream).emit_program(program)


def emit_change(event: ChangeEvent, stream: Optional[TextIO] = None) -> None:
    ScopeEmitter(stream=stream).emit_change(event)
