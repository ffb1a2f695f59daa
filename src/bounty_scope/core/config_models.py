"""
Purpose: Typed configuration models with validation.
Constraints: Pure models; no file I/O or side effects.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bounty_scope.core.models import AuthConfig
from bounty_scope.core.utils.retry import RetryPolicy


class PlatformCredentials(BaseModel):
    model_config = ConfigDict(extra="allow")
    username: str = ""
    email: str = ""
    password: str = ""
    token: str = ""
    otp_secret: str = ""
    proxy: str = ""

    def to_auth_config(self) -> AuthConfig:
        return AuthConfig(
            username=self.username,
            email=self.email,
            password=self.password,
            token=self.token,
            otp_secret=self.otp_secret,
            proxy=self.proxy,
        )


class PollSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    concurrency: int = Field(default=5, ge=1)
    fail_fast: bool = False
    wipe_threshold: int = Field(default=10, ge=0)
    skip_empty: bool = False
    store_dir: str = "data/snapshots"
    change_log: str = "data/changes.csv"
    # platform name -> program urls or handles to leave out of every run
    ignored_programs: Dict[str, List[str]] = Field(default_factory=dict)


class RetrySettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    jitter: float = Field(default=0.2, ge=0)
    retry_on_status: List[int] = Field(default_factory=lambda: [429, 500, 502, 503, 504])

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
            retry_on_status=frozenset(self.retry_on_status),
        )


class RateLimits(BaseModel):
    model_config = ConfigDict(extra="allow")
    # seconds between request starts, per platform; missing means unlimited
    intervals: Dict[str, float] = Field(default_factory=lambda: {"bc": 1.0})

    @field_validator("intervals")
    @classmethod
    def _non_negative(cls, value: Dict[str, float]) -> Dict[str, float]:
        for name, interval in value.items():
            if interval < 0:
                raise ValueError(f"negative interval for {name}")
        return value

    def interval_for(self, platform: str) -> float:
        return float(self.intervals.get(platform, 0.0))
