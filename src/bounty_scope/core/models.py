"""
Purpose: Shared data models for scope data, snapshots and change events.
Constraints: Data containers only; no I/O.
"""

# Imports
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

NO_IN_SCOPE_TABLE = "NO_IN_SCOPE_TABLE"


# Public API
@dataclass(frozen=True)
class ScopeElement:
    """One target declared in or out of scope by a program."""

    target: str
    description: str = ""
    category: str = ""
    is_bbp: bool = False

    @property
    def is_placeholder(self) -> bool:
        return self.target == NO_IN_SCOPE_TABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "description": self.description,
            "category": self.category,
            "is_bbp": self.is_bbp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScopeElement":
        return cls(
            target=str(data.get("target", "")),
            description=str(data.get("description", "") or ""),
            category=str(data.get("category", "") or ""),
            is_bbp=bool(data.get("is_bbp", False)),
        )


@dataclass(frozen=True)
class ProgramData:
    """Scope of one program as fetched from a platform."""

    url: str
    in_scope: Tuple[ScopeElement, ...] = ()
    out_of_scope: Tuple[ScopeElement, ...] = ()

    def __post_init__(self):
        # Accept lists from adapters but store tuples so instances stay immutable.
        object.__setattr__(self, "in_scope", tuple(self.in_scope))
        object.__setattr__(self, "out_of_scope", tuple(self.out_of_scope))

    @property
    def is_empty(self) -> bool:
        return not self.in_scope and not self.out_of_scope

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "in_scope": [e.to_dict() for e in self.in_scope],
            "out_of_scope": [e.to_dict() for e in self.out_of_scope],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProgramData":
        return cls(
            url=str(data.get("url", "")),
            in_scope=[ScopeElement.from_dict(e) for e in data.get("in_scope", []) or []],
            out_of_scope=[ScopeElement.from_dict(e) for e in data.get("out_of_scope", []) or []],
        )


@dataclass
class Snapshot:
    """All programs of one platform at one point in time, keyed by program url."""

    platform: str
    programs: Dict[str, ProgramData] = field(default_factory=dict)
    handles: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_programs(
        cls,
        platform: str,
        programs: Iterable[ProgramData],
        handles: Optional[Mapping[str, str]] = None,
    ) -> "Snapshot":
        by_url = {p.url: p for p in programs}
        known = {url: h for url, h in (handles or {}).items() if url in by_url}
        return cls(platform=platform, programs=by_url, handles=known)

    @property
    def program_count(self) -> int:
        return len(self.programs)

    def handle_for(self, url: str) -> str:
        return self.handles.get(url, url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "programs": [
                {**p.to_dict(), "handle": self.handles.get(url, "")}
                for url, p in sorted(self.programs.items())
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Snapshot":
        programs: Dict[str, ProgramData] = {}
        handles: Dict[str, str] = {}
        for raw in data.get("programs", []) or []:
            program = ProgramData.from_dict(raw)
            if not program.url:
                continue
            programs[program.url] = program
            if raw.get("handle"):
                handles[program.url] = str(raw["handle"])
        return cls(platform=str(data.get("platform", "")), programs=programs, handles=handles)


class ChangeKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UPDATED = "updated"
    PROGRAM_REMOVED = "program_removed"


@dataclass(frozen=True)
class ChangeEvent:
    """One difference between a persisted and a fresh snapshot."""

    kind: ChangeKind
    platform: str
    program_url: str
    target: str = ""
    category: str = ""
    in_scope: bool = True
    old_value: Optional[ScopeElement] = None
    new_value: Optional[ScopeElement] = None

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (self.platform, self.program_url, self.target, self.category)


@dataclass(frozen=True)
class PollOptions:
    """Filters passed through to pollers and applied by the poll run."""

    private_only: bool = False
    bounty_only: bool = False
    categories: str = "all"
    include_oos: bool = False


@dataclass(frozen=True)
class AuthConfig:
    """Credentials a poller may need; login flows that mint tokens live elsewhere."""

    username: str = ""
    email: str = ""
    password: str = ""
    token: str = ""
    otp_secret: str = ""
    proxy: str = ""
