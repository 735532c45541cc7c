"""
Agent Logger
Structured, name-scoped logging for the expansion planner

Every line goes through two filters:
- SensitiveDataFilter: reasoning/geocoding credentials never reach a handler
- ErrorDeduplicationFilter: a flapping dependency does not flood the log
"""

import json
import logging
import re
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# (pattern, replacement) applied in order to the formatted message
SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"sk-[A-Za-z0-9_\-]{20,}"), "sk-****"),
    (re.compile(r"Bearer\s+[A-Za-z0-9_\-\.]{20,}"), "Bearer ****"),
    (re.compile(r"([?&]key=)[A-Za-z0-9_\-]{8,}"), r"\1****"),
    (
        re.compile(r'(?i)(api[_-]?key|token|secret|password)["\']?\s*[:=]\s*["\']?[A-Za-z0-9_\-]{16,}["\']?'),
        r"\1=****",
    ),
)

STAGE_MARKERS = {"start": ">", "complete": "+", "skip": "-", "error": "x"}


def mask_secrets(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """
    Masks credentials before a record is emitted

    The message is formatted once (msg % args) and masked as a whole, so a key
    passed as a %-argument is caught the same way as one inside an f-string.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)
        record.msg = mask_secrets(message)
        record.args = ()
        return True


@dataclass
class _Seen:
    first_seen: float
    count: int = 1
    suppressed: int = 0


class ErrorDeduplicationFilter(logging.Filter):
    """
    Drops bursts of identical warnings/errors

    Numbers and timestamps are normalized away, so "retry 1 failed" and
    "retry 2 failed" count as the same message. After max_count copies inside
    window_seconds further copies are dropped, except the first and every
    summary_every-th one, which are rewritten as a "[Dedup]" summary line.

    Usage:
        dedup_filter = ErrorDeduplicationFilter(window_seconds=60, max_count=3)
        logging.getLogger("pipeline").addFilter(dedup_filter)
    """

    def __init__(
        self,
        window_seconds: float = 60,
        max_count: int = 3,
        summary_every: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self.window_seconds = window_seconds
        self.max_count = max_count
        self.summary_every = summary_every
        self._clock = clock
        self._seen: dict[str, _Seen] = {}

    @staticmethod
    def _key(record: logging.LogRecord) -> str:
        text = re.sub(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}", "<TS>", str(record.msg))
        text = re.sub(r"\b\d+(\.\d+)?\b", "<N>", text)
        return f"{record.name}:{record.levelno}:{text[:200]}"

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno < logging.WARNING:
            return True

        now = self._clock()
        self._seen = {
            k: seen for k, seen in self._seen.items() if now - seen.first_seen <= self.window_seconds
        }

        key = self._key(record)
        seen = self._seen.get(key)
        if seen is None:
            self._seen[key] = _Seen(first_seen=now)
            return True

        seen.count += 1
        if seen.count <= self.max_count:
            return True

        seen.suppressed += 1
        if seen.suppressed == 1 or seen.suppressed % self.summary_every == 0:
            record.msg = (
                f"[Dedup] {seen.suppressed} identical messages suppressed "
                f"(original: {str(record.msg)[:100]})"
            )
            record.args = ()
            return True
        return False

    def get_stats(self) -> dict[str, Any]:
        return {
            "tracked_messages": len(self._seen),
            "total_suppressed": sum(seen.suppressed for seen in self._seen.values()),
            "window_seconds": self.window_seconds,
            "max_count": self.max_count,
        }


class AgentLogger:
    """
    Name-scoped logger (one instance per name)

    Usage:
        logger = AgentLogger("pipeline")
        logger.pipeline_stage("Market Analysis", "start", {"region": "Berlin"})
        logger.llm_response("gpt-5-mini", total_tokens=1200, latency_ms=830.0)
    """

    _instances: dict[str, "AgentLogger"] = {}

    def __new__(cls, name: str = "expansion", log_dir: str = "./logs"):
        if name not in cls._instances:
            cls._instances[name] = super().__new__(cls)
        return cls._instances[name]

    def __init__(self, name: str = "expansion", log_dir: str = "./logs"):
        if getattr(self, "_initialized", False):
            return

        self.name = name
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.logger = self._build_logger()
        self._initialized = True

    def _build_logger(self) -> logging.Logger:
        logger = logging.getLogger(self.name)
        logger.setLevel(logging.DEBUG)
        logger.handlers = []

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.INFO)
        console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))

        log_file = self.log_dir / f"{self.name}_{datetime.now():%Y-%m-%d}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        # logger-level filters run once per record, before any handler
        logger.filters = [SensitiveDataFilter(), ErrorDeduplicationFilter()]
        logger.addHandler(console)
        logger.addHandler(file_handler)
        return logger

    @staticmethod
    def _with_extra(message: str, extra: dict | None) -> str:
        if not extra:
            return message
        try:
            return f"{message} | {json.dumps(extra, ensure_ascii=False, default=str)}"
        except (TypeError, ValueError):
            return f"{message} | {extra}"

    def debug(self, message: str, extra: dict | None = None) -> None:
        self.logger.debug(self._with_extra(message, extra))

    def info(self, message: str, extra: dict | None = None) -> None:
        self.logger.info(self._with_extra(message, extra))

    def warning(self, message: str, extra: dict | None = None) -> None:
        self.logger.warning(self._with_extra(message, extra))

    def error(self, message: str, extra: dict | None = None, exc_info: bool = False) -> None:
        self.logger.error(self._with_extra(message, extra), exc_info=exc_info)

    def llm_request(self, model: str, operation: str | None = None) -> None:
        """Outbound reasoning call; the prompt itself is never logged"""
        self.debug(f"LLM Request: {model}", {"operation": operation})

    def llm_response(
        self, model: str, total_tokens: int | None = None, latency_ms: float | None = None
    ) -> None:
        self.debug(
            f"LLM Response: {model}",
            {
                "total_tokens": total_tokens,
                "latency_ms": round(latency_ms, 1) if latency_ms is not None else None,
            },
        )

    def pipeline_stage(self, stage: str, status: str, details: dict | None = None) -> None:
        """start / complete / skip at INFO, error at WARNING"""
        message = f"{STAGE_MARKERS.get(status, '*')} Stage: {stage} [{status}]"
        if status == "error":
            self.warning(message, details)
        else:
            self.info(message, details)

    def metric(self, name: str, value: Any, unit: str | None = None) -> None:
        self.debug(f"Metric: {name} = {value}{f' {unit}' if unit else ''}")
