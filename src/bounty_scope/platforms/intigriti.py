"""
Purpose: Intigriti adapter over the external researcher API (bearer token).
Constraints: Handles are `company/program` paths; program ids are resolved from the listing.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from bounty_scope.core.categories import flatten_text
from bounty_scope.core.errors import FetchError
from bounty_scope.core.models import AuthConfig, PollOptions, ProgramData, ScopeElement
from bounty_scope.platforms.base import Poller, dedupe

logger = logging.getLogger(__name__)

API_URL = "https://api.intigriti.com/external/researcher/v1/programs"
WEB_URL = "https://app.intigriti.com/researcher"
PAGE_LIMIT = 500

PUBLIC_CONFIDENTIALITY = 4
TIER_NO_BOUNTY = 1
TIER_OUT_OF_SCOPE = 5


class IntigritiPoller(Poller):
    name = "it"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._ids: Dict[str, str] = {}
        self._urls: Dict[str, str] = {}
        self._refreshed = False

    def authenticate(self, credentials: AuthConfig) -> None:
        if self.authenticated:
            return
        token = self._require_token(credentials)
        self.http.set_header("Authorization", f"Bearer {token}")
        self.authenticated = True

    def program_url(self, handle: str) -> str:
        with self._lock:
            return self._urls.get(handle) or f"{WEB_URL}/programs/{handle}/detail"

    def list_program_handles(self, options: PollOptions) -> List[str]:
        handles: List[str] = []
        for handle, program_id, url, record in self._walk_listing():
            with self._lock:
                self._ids[handle] = program_id
                self._urls[handle] = url
            if options.private_only and _nested(record, "confidentialityLevel", "id") == PUBLIC_CONFIDENTIALITY:
                continue
            if options.bounty_only and not _nested(record, "maxBounty", "value"):
                continue
            handles.append(handle)
        with self._refresh_lock:
            self._refreshed = True
        return dedupe(handles)

    def fetch_program_scope(self, handle: str, options: PollOptions) -> ProgramData:
        program_id = self._program_id(handle)
        url = self.program_url(handle)
        if not program_id:
            logger.info("it: %s is no longer listed", handle)
            return ProgramData(url=url)

        data = self._get_json(f"{API_URL}/{program_id}", handle=handle)
        if data is None:
            return ProgramData(url=url)
        domains = data.get("domains")
        if not isinstance(domains, dict):
            raise FetchError(f"it: unexpected program payload for {handle}", handle=handle)

        in_scope: List[ScopeElement] = []
        out_of_scope: List[ScopeElement] = []
        for item in domains.get("content", []) or []:
            tier = _nested(item, "tier", "id")
            element = ScopeElement(
                target=str(item.get("endpoint", "") or "").strip(),
                description=flatten_text(item.get("description")),
                category=str(_nested(item, "type", "value") or ""),
                is_bbp=tier not in (TIER_NO_BOUNTY, TIER_OUT_OF_SCOPE),
            )
            if tier == TIER_OUT_OF_SCOPE:
                out_of_scope.append(element)
            elif not options.bounty_only or element.is_bbp:
                in_scope.append(element)
        return ProgramData(url=url, in_scope=in_scope, out_of_scope=out_of_scope)

    # Helpers
    def _walk_listing(self):
        offset, total = 0, None
        while total is None or offset < total:
            data = self._get_json(f"{API_URL}?statusId=3&limit={PAGE_LIMIT}&offset={offset}")
            if total is None:
                total = self._as_int(data.get("maxCount"), API_URL)
            records = data.get("records", []) or []
            if not records:
                break
            for record in records:
                parsed = _parse_record(record)
                if parsed:
                    yield parsed + (record,)
            offset += len(records)

    def _program_id(self, handle: str) -> str:
        with self._lock:
            program_id = self._ids.get(handle, "")
        if program_id:
            return program_id
        # Known handle from an earlier run: rebuild the id map once per cycle.
        with self._refresh_lock:
            if not self._refreshed:
                for listed, listed_id, url, _ in self._walk_listing():
                    with self._lock:
                        self._ids.setdefault(listed, listed_id)
                        self._urls.setdefault(listed, url)
                self._refreshed = True
        with self._lock:
            return self._ids.get(handle, "")


def _nested(record: Dict[str, Any], *keys: str) -> Any:
    value: Any = record
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _parse_record(record: Dict[str, Any]) -> Optional[Tuple[str, str, str]]:
    detail = str(_nested(record, "webLinks", "detail") or "")
    if "=" not in detail:
        return None
    url = WEB_URL + detail.split("=", 1)[1]
    parts = url[: -len("/detail")].split("/") if url.endswith("/detail") else url.split("/")
    handle = "/".join(parts[-2:]) if len(parts) >= 2 else url
    return handle, str(record.get("id", "")), url
