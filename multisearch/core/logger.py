"""Structured logging: console output plus an optional JSON-lines event log."""

import json
import logging
import os
import sys
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, TextIO

from multisearch.core.config import config


def _format_duration(seconds: float) -> str:
    if seconds < 0:
        return "0s"
    if seconds >= 60:
        m = int(seconds // 60)
        s = seconds % 60
        if s < 0.05:
            return f"{m}m"
        return f"{m}m {s:.0f}s" if s >= 1 else f"{m}m {s:.1f}s"
    if seconds >= 1:
        return f"{seconds:.1f}s"
    if seconds >= 0.001:
        return f"{seconds * 1000:.0f}ms"
    if seconds > 0:
        return "<1ms"
    return "0s"


def _short_reason(reason: str | None, max_len: int = 80) -> str:
    """One-line short reason for console (failed backend call)."""
    if not reason or not reason.strip():
        return ""
    s = reason.strip().replace("\n", " ").strip()
    return s[:max_len] + "..." if len(s) > max_len else s


def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    try:
        return sys.stdout.isatty()
    except Exception:
        return False


def _c(role: str) -> str:
    if not _use_color():
        return ""
    codes = {
        "collection": "\033[38;5;81m",
        "ok": "\033[38;5;78m",
        "fail": "\033[38;5;203m",
        "duration": "\033[38;5;221m",
        "dim": "\033[38;5;239m",
    }
    return codes.get(role, "")


def _reset() -> str:
    if not _use_color():
        return ""
    return "\033[0m"


@dataclass
class LogEvent:
    event_type: str
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class SearchLogger:
    def __init__(self, file_enabled: bool | None = None):
        self._file_enabled = config.log_file_enabled if file_enabled is None else file_enabled
        self.log_file = config.logs_dir / "search.log"
        self._file_lock = threading.Lock()
        self._log_file_handle: TextIO | None = None
        self._setup_console_logger()

    def _setup_console_logger(self):
        self.console = logging.getLogger("multisearch")
        self.console.setLevel(logging.DEBUG)
        self._console_formatter = logging.Formatter(
            "%(asctime)s │ %(message)s", datefmt="%H:%M:%S"
        )
        if not self.console.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.INFO)
            handler.setFormatter(self._console_formatter)
            self.console.addHandler(handler)

    def _file(self) -> TextIO:
        if self._log_file_handle is None:
            config.logs_dir.mkdir(parents=True, exist_ok=True)
            self._log_file_handle = open(self.log_file, "a", encoding="utf-8")
        return self._log_file_handle

    def log_event(self, event: LogEvent) -> None:
        if not self._file_enabled:
            return
        with self._file_lock:
            handle = self._file()
            handle.write(event.to_json() + "\n")
            handle.flush()

    def _timestamp(self) -> str:
        return datetime.now().isoformat()

    def backend_call(
        self,
        operation: str,
        collection: str,
        duration_seconds: float,
        success: bool,
        *,
        cached: bool = False,
        error_reason: str | None = None,
    ) -> None:
        data: dict[str, Any] = {
            "operation": operation,
            "collection": collection,
            "duration_seconds": round(duration_seconds, 4),
            "success": success,
            "cached": cached,
        }
        if not success and error_reason:
            data["error_reason"] = error_reason[:500]
        self.log_event(
            LogEvent(event_type="BACKEND_CALL", timestamp=self._timestamp(), data=data)
        )
        dur = f"{_c('duration')}{_format_duration(duration_seconds)}{_reset()}"
        label = f"{_c('collection')}{collection}{_reset()}"
        if success:
            suffix = " (cache)" if cached else ""
            self.console.debug(f"{operation}({label}) {_c('ok')}[ok]{_reset()} {dur}{suffix}")
        else:
            self.console.warning(
                f"{operation}({label}) {_c('fail')}[failed]{_reset()} {dur}  {_short_reason(error_reason)}"
            )

    def aggregation_done(
        self,
        query: str,
        collections: list[str],
        failed: list[str],
        hit_count: int,
        duration_seconds: float,
    ) -> None:
        self.log_event(
            LogEvent(
                event_type="AGGREGATION",
                timestamp=self._timestamp(),
                data={
                    "query": query[:200],
                    "collections": collections,
                    "failed": failed,
                    "hits": hit_count,
                    "duration_seconds": round(duration_seconds, 4),
                },
            )
        )
        dur = f"{_c('duration')}{_format_duration(duration_seconds)}{_reset()}"
        status = (
            f"{_c('fail')}degraded: {', '.join(failed)}{_reset()}"
            if failed
            else f"{_c('ok')}[ok]{_reset()}"
        )
        self.console.info(
            f"Aggregate {query[:60]!r}  {len(collections)} collections  {hit_count} hits  {dur}  {status}"
        )

    def info(self, message: str, *args, **kwargs):
        self.console.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs):
        text = message % args if args else message
        self.log_event(
            LogEvent(
                event_type="WARNING",
                timestamp=self._timestamp(),
                data={"message": text[:500]},
            )
        )
        self.console.warning(message, *args, **kwargs)

    def debug(self, message: str, *args, **kwargs):
        self.console.debug(message, *args, **kwargs)

    def close(self) -> None:
        with self._file_lock:
            if self._log_file_handle is not None:
                self._log_file_handle.close()
                self._log_file_handle = None


logger = SearchLogger()
