"""
Purpose: Load environment and JSON configuration for poll runs.
Constraints: Pure config I/O only; no network side effects.
"""

# Imports
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from bounty_scope.core.config_models import (
    PlatformCredentials,
    PollSettings,
    RateLimits,
    RetrySettings,
)
from bounty_scope.core.models import AuthConfig
from bounty_scope.core.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

# platform -> credential field -> environment variable
_CREDENTIAL_ENV: Dict[str, Dict[str, str]] = {
    "h1": {"username": "H1_USERNAME", "token": "H1_TOKEN"},
    "bc": {
        "email": "BC_EMAIL",
        "password": "BC_PASSWORD",
        "otp_secret": "BC_OTP_SECRET",
        "token": "BC_TOKEN",
    },
    "it": {"token": "IT_TOKEN"},
    "ywh": {
        "email": "YWH_EMAIL",
        "password": "YWH_PASSWORD",
        "otp_secret": "YWH_OTP_SECRET",
        "token": "YWH_TOKEN",
    },
}


# Public API
class ConfigManager:
    """Credentials from the environment, poll/retry/rate settings from config/*.json."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else Path(__file__).resolve().parents[3] / "config"
        self.credentials: Dict[str, PlatformCredentials] = {}
        self.poll_settings = PollSettings()
        self.retry_settings = RetrySettings()
        self.rate_limits = RateLimits()
        self.log_level = "INFO"
        self.env_file: Optional[Path] = None

    def load_all(self) -> "ConfigManager":
        self.load_env()
        self.load_settings()
        self.load_rate_limits()
        self.apply_env_overrides()
        return self

    def load_env(self) -> "ConfigManager":
        """Load the first env file found, then read per-platform credentials."""
        env_files = [
            self.config_dir / "credentials.env",
            Path.cwd() / ".env",
            Path.home() / ".bounty_scope.env",
        ]
        for env_file in env_files:
            if env_file.exists():
                load_dotenv(env_file)
                self.env_file = env_file
                break

        if self.env_file:
            logger.info("Loaded environment from: %s", self.env_file)
        else:
            logger.debug("No .env file found")

        shared_proxy = os.getenv("PROXY", "")
        self.credentials = {}
        for platform, fields in _CREDENTIAL_ENV.items():
            values = {name: os.getenv(var, "") for name, var in fields.items()}
            values["proxy"] = os.getenv(f"{platform.upper()}_PROXY", shared_proxy)
            self.credentials[platform] = PlatformCredentials(**values)
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        return self

    def load_settings(self) -> "ConfigManager":
        """Load poll and retry settings from settings.json."""
        raw = self._load_json_object("settings.json")
        try:
            self.poll_settings = PollSettings(**(raw.get("poll", {}) or {}))
            self.retry_settings = RetrySettings(**(raw.get("retry", {}) or {}))
        except ValidationError as exc:
            logger.warning("Invalid settings.json, using defaults: %s", exc)
            self.poll_settings = PollSettings()
            self.retry_settings = RetrySettings()
        return self

    def load_rate_limits(self) -> "ConfigManager":
        """Load per-platform request intervals from rate_limits.json."""
        raw = self._load_json_object("rate_limits.json")
        try:
            self.rate_limits = RateLimits(**raw) if raw else RateLimits()
        except ValidationError as exc:
            logger.warning("Invalid rate_limits.json, using defaults: %s", exc)
            self.rate_limits = RateLimits()
        return self

    def apply_env_overrides(self) -> "ConfigManager":
        concurrency = os.getenv("POLL_CONCURRENCY", "").strip()
        if concurrency:
            try:
                self.poll_settings.concurrency = max(1, int(concurrency))
            except ValueError:
                logger.warning("Ignoring non-numeric POLL_CONCURRENCY=%r", concurrency)
        snapshot_dir = os.getenv("SNAPSHOT_DIR", "").strip()
        if snapshot_dir:
            self.poll_settings.store_dir = snapshot_dir
        for field_name, cast in (
            ("attempts", int),
            ("base_delay", float),
            ("max_delay", float),
            ("jitter", float),
        ):
            value = os.getenv(f"HTTP_RETRY_{field_name.upper()}", "").strip()
            if not value:
                continue
            try:
                setattr(self.retry_settings, field_name, cast(value))
            except ValueError:
                logger.warning("Ignoring invalid HTTP_RETRY_%s=%r", field_name.upper(), value)
        return self

    def credentials_for(self, platform: str) -> AuthConfig:
        creds = self.credentials.get(platform) or PlatformCredentials(proxy=os.getenv("PROXY", ""))
        return creds.to_auth_config()

    def retry_policy(self) -> RetryPolicy:
        return self.retry_settings.to_policy()

    def resolve_path(self, path: str) -> Path:
        """Resolve a configured path relative to the project root."""
        path_obj = Path(path).expanduser()
        if path_obj.is_absolute():
            return path_obj
        return self.config_dir.parent / path_obj

    def _load_json_object(self, filename: str) -> Dict[str, Any]:
        filepath = self.config_dir / filename
        if not filepath.exists():
            logger.debug("No %s found, using defaults", filename)
            return {}
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                content = f.read().strip()
        except OSError as exc:
            logger.warning("Error reading %s: %s. Using defaults.", filename, exc)
            return {}
        if not content:
            logger.warning("Empty %s, using defaults", filename)
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("Error reading %s: %s. Using defaults.", filename, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Invalid format in %s, using defaults", filename)
            return {}
        return data
