"""
Purpose: HackerOne adapter over the hacker API (basic auth, username + API token).
Constraints: Read-only; login flows that mint tokens are out of scope.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List

from bounty_scope.core.categories import flatten_text
from bounty_scope.core.errors import AuthError, FetchError
from bounty_scope.core.models import NO_IN_SCOPE_TABLE, AuthConfig, PollOptions, ProgramData, ScopeElement
from bounty_scope.platforms.base import Poller, dedupe

logger = logging.getLogger(__name__)

API_URL = "https://api.hackerone.com/v1"
PROGRAM_URL = "https://hackerone.com/"


class HackerOnePoller(Poller):
    name = "h1"

    def authenticate(self, credentials: AuthConfig) -> None:
        if self.authenticated:
            return
        token = self._require_token(credentials)
        if not credentials.username:
            raise AuthError("h1: username is required with the API token", platform=self.name)
        basic = base64.b64encode(f"{credentials.username}:{token}".encode()).decode()
        self.http.set_header("Authorization", f"Basic {basic}")
        self.http.set_header("Accept", "application/json")
        self.authenticated = True

    def program_url(self, handle: str) -> str:
        return PROGRAM_URL + handle

    def list_program_handles(self, options: PollOptions) -> List[str]:
        handles: List[str] = []
        url = f"{API_URL}/hackers/programs?page%5Bsize%5D=100"
        while url:
            data = self._get_json(url)
            for item in data.get("data", []) or []:
                attrs = item.get("attributes", {}) or {}
                if self._keep_program(attrs, options):
                    handles.append(attrs.get("handle", ""))
            url = (data.get("links", {}) or {}).get("next", "")
        return dedupe(handles)

    def fetch_program_scope(self, handle: str, options: PollOptions) -> ProgramData:
        in_scope: List[ScopeElement] = []
        out_of_scope: List[ScopeElement] = []
        asset_count = 0
        url = f"{API_URL}/hackers/programs/{handle}/structured_scopes?page%5Bnumber%5D=1&page%5Bsize%5D=100"
        while url:
            data = self._get_json(url, handle=handle)
            if data is None:
                return ProgramData(url=self.program_url(handle))
            if "data" not in data:
                raise FetchError(f"h1: unexpected scope payload for {handle}", handle=handle)
            for item in data.get("data", []) or []:
                asset_count += 1
                attrs = item.get("attributes", {}) or {}
                element = self._element(attrs)
                if attrs.get("eligible_for_submission"):
                    if not options.bounty_only or element.is_bbp:
                        in_scope.append(element)
                else:
                    out_of_scope.append(element)
            url = (data.get("links", {}) or {}).get("next", "")

        if options.bounty_only and not in_scope:
            out_of_scope = []
        if asset_count == 0:
            in_scope.append(ScopeElement(target=NO_IN_SCOPE_TABLE))
        return ProgramData(url=self.program_url(handle), in_scope=in_scope, out_of_scope=out_of_scope)

    # Helpers
    @staticmethod
    def _keep_program(attrs: Dict[str, Any], options: PollOptions) -> bool:
        if attrs.get("submission_state") != "open":
            return False
        if options.private_only and attrs.get("state") != "soft_launched":
            return False
        if options.bounty_only and not attrs.get("offers_bounties"):
            return False
        return True

    @staticmethod
    def _element(attrs: Dict[str, Any]) -> ScopeElement:
        return ScopeElement(
            target=str(attrs.get("asset_identifier", "") or "").strip(),
            description=flatten_text(attrs.get("instruction")),
            category=str(attrs.get("asset_type", "") or ""),
            is_bbp=bool(attrs.get("eligible_for_bounty")),
        )
