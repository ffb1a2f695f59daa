"""
Purpose: YesWeHack adapter over the public API (bearer token).
Constraints: Expects a ready JWT; the email/password/TOTP login lives elsewhere.
"""

from __future__ import annotations

import logging
from typing import List

from bounty_scope.core.errors import FetchError
from bounty_scope.core.models import AuthConfig, PollOptions, ProgramData, ScopeElement
from bounty_scope.platforms.base import Poller, dedupe

logger = logging.getLogger(__name__)

API_URL = "https://api.yeswehack.com/programs"
WEB_URL = "https://yeswehack.com/programs/"


class YesWeHackPoller(Poller):
    name = "ywh"

    def authenticate(self, credentials: AuthConfig) -> None:
        if self.authenticated:
            return
        token = self._require_token(credentials)
        self.http.set_header("Authorization", f"Bearer {token}")
        self.authenticated = True

    def program_url(self, handle: str) -> str:
        return WEB_URL + handle

    def list_program_handles(self, options: PollOptions) -> List[str]:
        slugs: List[str] = []
        page, nb_pages = 1, 1
        while page <= nb_pages:
            data = self._get_json(f"{API_URL}?page={page}")
            for item in data.get("items", []) or []:
                if item.get("disabled"):
                    continue
                if options.private_only and item.get("public"):
                    continue
                if options.bounty_only and not item.get("bounty"):
                    continue
                slugs.append(str(item.get("slug", "") or ""))
            nb_pages = self._as_int((data.get("pagination", {}) or {}).get("nb_pages"), API_URL)
            page += 1
        return dedupe(slugs)

    def fetch_program_scope(self, handle: str, options: PollOptions) -> ProgramData:
        url = self.program_url(handle)
        data = self._get_json(f"{API_URL}/{handle}", handle=handle)
        if data is None:
            return ProgramData(url=url)
        if "scopes" not in data:
            raise FetchError(f"ywh: unexpected program payload for {handle}", handle=handle)

        is_bbp = bool(data.get("bounty"))
        in_scope = [
            ScopeElement(
                target=str(item.get("scope", "") or "").strip(),
                category=str(item.get("scope_type", "") or ""),
                is_bbp=is_bbp,
            )
            for item in data.get("scopes", []) or []
        ]
        # Out-of-scope entries are bare strings without a type.
        out_of_scope = [
            ScopeElement(target=str(item).strip(), category="other")
            for item in data.get("out_of_scope", []) or []
            if isinstance(item, str)
        ]
        return ProgramData(url=url, in_scope=in_scope, out_of_scope=out_of_scope)
