"""
Purpose: Immunefi adapter reading the JSON embedded in public program pages.
Constraints: No authentication; invite-only programs are skipped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from bounty_scope.core.categories import flatten_text
from bounty_scope.core.errors import FetchError
from bounty_scope.core.models import AuthConfig, PollOptions, ProgramData, ScopeElement
from bounty_scope.platforms.base import GONE_STATUSES, Poller, dedupe

logger = logging.getLogger(__name__)

PLATFORM_URL = "https://immunefi.com"

_decoder = json.JSONDecoder()


def extract_json_array(body: str, key: str) -> Optional[List[Any]]:
    """Return the first JSON array embedded as `"<key>":[...]` in a page, or None."""
    marker = f'"{key}":['
    start = body.find(marker)
    if start < 0:
        return None
    try:
        value, _ = _decoder.raw_decode(body, start + len(marker) - 1)
    except ValueError:
        return None
    return value if isinstance(value, list) else None


class ImmunefiPoller(Poller):
    name = "immunefi"

    def authenticate(self, credentials: AuthConfig) -> None:
        if credentials.proxy:
            self.http.session.proxies.update({"http": credentials.proxy, "https": credentials.proxy})
        self.authenticated = True

    def list_program_handles(self, options: PollOptions) -> List[str]:
        body = self._page(PLATFORM_URL + "/bug-bounty/")
        bounties = extract_json_array(body or "", "bounties") or []
        handles: List[str] = []
        for program in bounties:
            if not isinstance(program, dict):
                continue
            program_id = str(program.get("id", "") or "")
            if program_id and not program.get("inviteOnly"):
                handles.append(f"{PLATFORM_URL}/bug-bounty/{program_id}/information/")
        return dedupe(handles)

    def fetch_program_scope(self, handle: str, options: PollOptions) -> ProgramData:
        body = self._page(handle, gone_ok=True)
        if body is None:
            return ProgramData(url=handle)
        assets = extract_json_array(body, "assets")
        if assets is None:
            raise FetchError(f"immunefi: no asset table found on {handle}", handle=handle)
        in_scope: List[ScopeElement] = []
        for asset in assets:
            if not isinstance(asset, dict):
                continue
            in_scope.append(
                ScopeElement(
                    target=str(asset.get("url", "") or "").strip(),
                    description=flatten_text(asset.get("description")),
                    category=str(asset.get("type", "") or ""),
                    is_bbp=True,
                )
            )
        return ProgramData(url=handle, in_scope=in_scope)

    # Helpers
    def _page(self, url: str, gone_ok: bool = False) -> Optional[str]:
        resp = self.http.get(url, headers={"Accept": "*/*", "Rsc": "1"})
        if gone_ok and resp.status_code in GONE_STATUSES:
            return None
        if not 200 <= resp.status_code < 300:
            raise FetchError(f"immunefi: HTTP {resp.status_code} for {url}", handle=url, status_code=resp.status_code)
        return resp.text
