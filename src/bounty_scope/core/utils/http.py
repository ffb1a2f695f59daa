"""
Purpose: HTTP primitive with retry/backoff, ban detection and optional rate limiting.
Constraints: No platform logic; callers parse and validate payloads.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

import requests

from bounty_scope.core.errors import AuthError, BannedError, TransientHTTPError
from bounty_scope.core.rate_limiter import RateLimiter
from bounty_scope.core.utils.retry import RetryPolicy, retry

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:109.0) Gecko/20100101 Firefox/115.0",
    "Cache-Control": "no-transform",
    "Accept-Language": "en",
}

BAN_SIGNATURES = (
    "Request blocked",
    "Attention Required! | Cloudflare",
    "cf-chl-bypass",
    "Access denied",
    "You have been blocked",
)

DEFAULT_TIMEOUT = 30


def looks_banned(status_code: int, body: str, signatures: Iterable[str] = BAN_SIGNATURES) -> bool:
    if status_code not in (403, 406, 503):
        return False
    return any(sig in (body or "") for sig in signatures)


def request_with_retry(
    method: str,
    url: str,
    *,
    session: Optional[requests.Session] = None,
    policy: Optional[RetryPolicy] = None,
    limiter: Optional[RateLimiter] = None,
    ban_signatures: Iterable[str] = BAN_SIGNATURES,
    **kwargs,
) -> requests.Response:
    """Send one request, retrying transient failures under `policy`.

    Raises TransientHTTPError once retries are exhausted, BannedError when the
    platform answers with a block page, and AuthError on 401. Other statuses
    are returned to the caller unchanged.
    """
    policy = policy or RetryPolicy.from_env()
    sender = session or requests
    kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
    signatures = tuple(ban_signatures)

    def _send() -> requests.Response:
        return sender.request(method, url, **kwargs)

    def _do_request() -> requests.Response:
        try:
            resp = limiter.submit(_send) if limiter is not None else _send()
        except requests.RequestException as exc:
            raise TransientHTTPError(f"{method} {url} failed: {exc}") from exc
        if looks_banned(resp.status_code, resp.text, signatures):
            raise BannedError(f"Blocked by {url} (HTTP {resp.status_code})", status_code=resp.status_code)
        if resp.status_code == 401:
            raise AuthError(f"Unauthorized for {url}")
        if resp.status_code in policy.retry_on_status:
            raise TransientHTTPError(
                f"Retryable HTTP status {resp.status_code} for {url}", status_code=resp.status_code
            )
        return resp

    def _log_retry(attempt: int, exc: Exception) -> None:
        logger.warning("Attempt %d/%d for %s failed: %s", attempt, policy.attempts, url, exc)

    return retry(
        _do_request,
        policy=policy,
        exceptions=(TransientHTTPError,),
        on_retry=_log_retry,
    )


class HttpClient:
    """Session-bound request helper shared by the requests of one poller."""

    def __init__(
        self,
        *,
        policy: Optional[RetryPolicy] = None,
        limiter: Optional[RateLimiter] = None,
        headers: Optional[Mapping[str, str]] = None,
        proxy: str = "",
        session: Optional[requests.Session] = None,
    ):
        self.policy = policy or RetryPolicy.from_env()
        self.limiter = limiter
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        if headers:
            self.session.headers.update(headers)
        if proxy:
            self.session.proxies.update({"http": proxy, "https": proxy})

    def set_header(self, name: str, value: str) -> None:
        self.session.headers[name] = value

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        return request_with_retry(
            method,
            url,
            session=self.session,
            policy=self.policy,
            limiter=self.limiter,
            **kwargs,
        )

    def get(self, url: str, **kwargs) -> requests.Response:
        return self.request("GET", url, **kwargs)
