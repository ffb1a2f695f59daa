"""
Purpose: Bugcrowd adapter over the researcher web endpoints (session cookie).
Constraints: Expects a ready `_bugcrowd_session` token; the login flow lives elsewhere.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Set

from bounty_scope.core.categories import flatten_text
from bounty_scope.core.errors import FetchError
from bounty_scope.core.models import NO_IN_SCOPE_TABLE, AuthConfig, PollOptions, ProgramData, ScopeElement, Snapshot
from bounty_scope.platforms.base import Poller, dedupe

logger = logging.getLogger(__name__)

BASE_URL = "https://bugcrowd.com"
LIST_PATH = "/programs.json?{vdp}hidden[]=false&sort[]=invited-desc&sort[]=promoted-desc&page[]={page}"


class BugcrowdPoller(Poller):
    name = "bc"
    # Bugcrowd starts challenging clients above roughly one request per second.
    default_interval = 1.0

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._bbp_lock = threading.Lock()
        self._bbp_handles: Set[str] = set()

    def authenticate(self, credentials: AuthConfig) -> None:
        if self.authenticated:
            return
        token = self._require_token(credentials)
        self.http.session.cookies.set("_bugcrowd_session", token, domain="bugcrowd.com")
        self.http.set_header("Accept", "*/*")
        self.authenticated = True

    def program_url(self, handle: str) -> str:
        if handle.startswith("http"):
            return handle
        return BASE_URL + handle

    def prime(self, previous: Optional[Snapshot]) -> None:
        """Remember which persisted programs pay bounties, for handles fetched without a listing."""
        if previous is None:
            return
        with self._bbp_lock:
            for url, program in previous.programs.items():
                if any(e.is_bbp for e in program.in_scope + program.out_of_scope):
                    self._bbp_handles.add(previous.handle_for(url))

    def list_program_handles(self, options: PollOptions) -> List[str]:
        paths: List[str] = []
        page, total_pages = 1, 1
        vdp = "vdp[]=false&" if options.bounty_only else ""
        while page <= total_pages:
            url = BASE_URL + LIST_PATH.format(vdp=vdp, page=page)
            data = self._get_json(url)
            if page == 1:
                total_pages = self._as_int((data.get("meta", {}) or {}).get("totalPages"), url)
            for program in data.get("programs", []) or []:
                path = program.get("program_url", "")
                if options.private_only and program.get("participation") == "public":
                    continue
                with self._bbp_lock:
                    if options.bounty_only or program.get("vdp") is False:
                        self._bbp_handles.add(path)
                    else:
                        self._bbp_handles.discard(path)
                paths.append(path)
            page += 1
        return dedupe(paths)

    def fetch_program_scope(self, handle: str, options: PollOptions) -> ProgramData:
        url = self.program_url(handle)
        groups = self._get_json(url + "/target_groups", handle=handle)
        if groups is None:
            return ProgramData(url=url)
        if "groups" not in groups:
            raise FetchError(f"bc: unexpected target_groups payload for {handle}", handle=handle)

        with self._bbp_lock:
            is_bbp = handle in self._bbp_handles
        in_scope: List[ScopeElement] = []
        out_of_scope: List[ScopeElement] = []
        has_scope_table = False
        for group in groups.get("groups", []) or []:
            targets_url = group.get("targets_url")
            if not targets_url:
                continue
            bucket = in_scope if group.get("in_scope") else out_of_scope
            has_scope_table = has_scope_table or bool(group.get("in_scope"))
            targets = self._get_json(BASE_URL + targets_url, handle=handle) or {}
            for target in targets.get("targets", []) or []:
                bucket.append(self._element(target, is_bbp))

        if not has_scope_table:
            in_scope.append(ScopeElement(target=NO_IN_SCOPE_TABLE))
        return ProgramData(url=url, in_scope=in_scope, out_of_scope=out_of_scope)

    # Helpers
    @staticmethod
    def _element(target: Dict[str, Any], is_bbp: bool) -> ScopeElement:
        name = str(target.get("name", "") or "").strip()
        uri = str(target.get("uri", "") or "").strip()
        return ScopeElement(
            target=uri or name,
            description=flatten_text(target.get("description")),
            category=str(target.get("category", "") or ""),
            is_bbp=is_bbp,
        )
