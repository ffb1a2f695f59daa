"""
Purpose: Centralized logging configuration with structured output support.
Constraints: Logging only; no business logic.
"""

# Imports
import json
import logging
import os
import re
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from bounty_scope.core.metrics import get_metrics

_REDACTED = "[redacted]"

_TOKEN_PATTERNS = [
    # Authorization headers
    (re.compile(r"(?i)\b(Bearer|Basic)\s+[A-Za-z0-9._~+/=\-]{8,}"), r"\1 " + _REDACTED),
    # Bugcrowd session cookie and generic cookie assignments
    (re.compile(r"(?i)\b(_bugcrowd_session|_session|session_id|csrf[-_]token)=[^;\s]+"), r"\1=" + _REDACTED),
    # JWTs (Intigriti, YesWeHack)
    (re.compile(r"\beyJ[a-zA-Z0-9_\-]+=*\.[a-zA-Z0-9_\-]+=*\.[a-zA-Z0-9_\-]+=*\b"), _REDACTED),
    (re.compile(r"\bghp_[A-Za-z0-9]{20,}\b"), _REDACTED),
]

_SECRET_KEYS = ("token", "password", "otp_secret", "cookie", "authorization")


def _redact_text(text: str) -> str:
    if not text:
        return text
    redacted = text
    for pattern, replacement in _TOKEN_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


def _redact_obj(value):
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, dict):
        return {
            k: (_REDACTED if str(k).lower() in _SECRET_KEYS and v else _redact_obj(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact_obj(v) for v in value]
    if isinstance(value, tuple):
        return tuple(_redact_obj(v) for v in value)
    return value


def _env_flag(name: str, default: str = "1") -> bool:
    return os.getenv(name, default).lower() not in ("0", "false", "no")


def _logs_dir() -> Path:
    override = os.getenv("LOG_DIR", "").strip()
    if override:
        return Path(override)
    path_parts = Path(__file__).resolve().parents
    project_root = path_parts[3] if len(path_parts) > 3 else path_parts[2]
    return project_root / "logs"


# Public API
class UnifiedLogger:
    """Configures the root handlers once; every module logger propagates to them."""

    _lock = threading.Lock()
    _metrics_thread_started = False
    _global_initialized = False

    def __init__(self, name: str = "bounty_scope", log_level: Optional[str] = None):
        self.name = name
        if log_level is None:
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        level = getattr(logging, log_level.upper(), logging.INFO)

        with self._lock:
            self.logger = logging.getLogger(name)
            self.logger.setLevel(level)
            if not UnifiedLogger._global_initialized:
                logs_dir = _logs_dir()
                logs_dir.mkdir(parents=True, exist_ok=True)
                timestamp = datetime.now().strftime("%Y%m%d")

                self._ensure_root_logger(logs_dir, timestamp, level)
                if _env_flag("METRICS_ENABLED"):
                    self._start_metrics_thread(logs_dir)

                UnifiedLogger._global_initialized = True
                self.logger.debug("Logger initialized. Log dir: %s", logs_dir)
            self.logger.propagate = True

    def get_logger(self) -> logging.Logger:
        return self.logger

    def log_poll_summary(self, platform: str, details: Dict[str, Any]) -> None:
        """One structured line per platform run, picked up by the JSON handler."""
        self.logger.info("POLL: %s", platform, extra={"platform": platform, "details": details})

    def log_metrics_snapshot(self) -> None:
        snapshot = get_metrics().snapshot()
        self.logger.info(
            "METRICS_SNAPSHOT",
            extra={"metric_snapshot": snapshot, "_metrics_internal": True},
        )

    @contextmanager
    def time_operation(self, operation_name: str):
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            self.logger.info("PERFORMANCE: %s took %.2fs", operation_name, duration)
            get_metrics().record(f"performance.{operation_name}", success=True)

    def _enable_json_logging(self, logs_dir: Path, timestamp: str, level: int, target: logging.Logger) -> None:
        json_handler = RotatingFileHandler(
            logs_dir / f"bounty_scope_json_{timestamp}.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        json_handler.setLevel(level)
        json_handler.setFormatter(_JsonFormatter(redact=_env_flag("LOG_REDACTION")))
        target.addHandler(json_handler)

    def _start_metrics_thread(self, logs_dir: Path) -> None:
        if UnifiedLogger._metrics_thread_started:
            return
        interval = int(os.getenv("METRICS_SNAPSHOT_INTERVAL_SEC", "60"))
        if interval <= 0:
            return
        metrics_path = logs_dir / "metrics.jsonl"
        log = logging.getLogger(__name__)

        def _loop():
            while True:
                time.sleep(interval)
                try:
                    get_metrics().write_snapshot(metrics_path)
                except OSError as exc:
                    log.warning("Metrics snapshot write failed: %s", exc)

        t = threading.Thread(target=_loop, daemon=True, name="metrics-snapshotter")
        t.start()
        UnifiedLogger._metrics_thread_started = True

    def _ensure_root_logger(self, logs_dir: Path, timestamp: str, level: int) -> None:
        if not _env_flag("ENABLE_ROOT_LOGGER"):
            return
        root_logger = logging.getLogger()
        if root_logger.handlers:
            return

        file_handler = RotatingFileHandler(
            logs_dir / f"bounty_scope_{timestamp}.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)

        # Scope lines go to stdout; diagnostics stay on stderr.
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(
            getattr(logging, os.getenv("CONSOLE_LOG_LEVEL", "WARNING").upper(), logging.WARNING)
        )

        detailed = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        )
        simple = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        if _env_flag("LOG_REDACTION"):
            file_handler.setFormatter(_RedactingFormatter(detailed))
        else:
            file_handler.setFormatter(detailed)
        console_handler.setFormatter(simple)

        root_logger.setLevel(level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

        if _env_flag("ENABLE_JSON_LOGGING"):
            self._enable_json_logging(logs_dir, timestamp, level, target=root_logger)
        if _env_flag("METRICS_ENABLED"):
            root_logger.addHandler(_MetricsHandler())


def setup_logger(name: str = "bounty_scope", log_level: Optional[str] = None) -> logging.Logger:
    return UnifiedLogger(name=name, log_level=log_level).get_logger()


class _MetricsHandler(logging.Handler):
    """Count log records per level."""

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, "_metrics_internal", False):
            return
        metrics = get_metrics()
        metrics.record(f"log.{record.levelname.lower()}", success=record.levelno < logging.ERROR)
        if record.levelno >= logging.ERROR:
            metrics.record_error("log.error")


class _RedactingFormatter(logging.Formatter):
    def __init__(self, base: logging.Formatter):
        super().__init__(base._fmt, base.datefmt)
        self._base = base

    def format(self, record: logging.LogRecord) -> str:
        original_msg, original_args = record.msg, record.args
        record.msg = _redact_text(record.getMessage())
        record.args = ()
        try:
            return self._base.format(record)
        finally:
            record.msg, record.args = original_msg, original_args


class _JsonFormatter(logging.Formatter):
    _EXTRA_FIELDS = ("platform", "details", "metric_snapshot")

    def __init__(self, redact: bool = True):
        super().__init__()
        self.redact = redact

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_text(message) if self.redact else message,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for name in self._EXTRA_FIELDS:
            if hasattr(record, name):
                value = getattr(record, name)
                log_obj[name] = _redact_obj(value) if self.redact else value
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)
