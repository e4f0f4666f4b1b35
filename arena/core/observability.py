"""アリーナの構造化イベント出力。

各コンポーネントは任意の ``logger`` (``EventLogger``) を受け取り、
``emit_event`` 経由でイベントを流す。認証情報に当たるキーは出力前に伏せる。
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
import json
import logging
from pathlib import Path
import sys
from threading import Lock
import time
from typing import Any, Protocol, TextIO

LOGGER = logging.getLogger(__name__)

REDACTED = "***"
SECRET_KEYS = frozenset({"api_key", "credential", "authorization", "secret"})


class EventLogger(Protocol):
    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        """Persist ``record`` for ``event_type``."""


def redact(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: REDACTED if key.lower() in SECRET_KEYS and value else value
        for key, value in record.items()
    }


def _encode(event_type: str, record: Mapping[str, Any], ts: float | None = None) -> str:
    payload: dict[str, Any] = {"event": event_type}
    if ts is not None:
        payload["ts"] = ts
    payload.update(redact(record))
    return json.dumps(payload, ensure_ascii=False, default=str)


class NullLogger:
    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        del event_type, record


class JsonlLogger:
    """1 イベント 1 行で JSONL ファイルに追記する。"""

    def __init__(self, path: str | Path, *, clock: Callable[[], float] = time.time) -> None:
        self._path = Path(path)
        self._clock = clock
        self._lock = Lock()

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        line = _encode(event_type, record, ts=self._clock())
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


class StdLogger:
    """Write events as JSON lines to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._lock = Lock()

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        line = _encode(event_type, record)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


class CompositeLogger:
    """Fan events out to several sinks; a failing sink does not stop the others."""

    def __init__(self, loggers: Iterable[EventLogger] = ()) -> None:
        self._loggers: list[EventLogger] = list(loggers)

    def add(self, logger: EventLogger) -> None:
        self._loggers.append(logger)

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        for logger in tuple(self._loggers):
            try:
                logger.emit(event_type, record)
            except Exception:  # noqa: BLE001 - sink isolation
                LOGGER.exception("event logger failed for %s", event_type)


class BoundLogger:
    """Adds fixed context fields (e.g. the run number) to every event."""

    def __init__(self, inner: EventLogger, context: Mapping[str, Any]) -> None:
        self._inner = inner
        self._context = dict(context)

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        self._inner.emit(event_type, {**self._context, **record})


def bind(logger: EventLogger | None, **context: Any) -> EventLogger | None:
    if logger is None:
        return None
    return BoundLogger(logger, context)


def emit_event(
    logger: EventLogger | None, event_type: str, record: Mapping[str, Any]
) -> None:
    if logger is None:
        return
    try:
        logger.emit(event_type, record)
    except Exception:  # noqa: BLE001 - sink isolation
        LOGGER.exception("event logger failed for %s", event_type)


__all__ = [
    "BoundLogger",
    "CompositeLogger",
    "EventLogger",
    "JsonlLogger",
    "NullLogger",
    "StdLogger",
    "bind",
    "emit_event",
    "redact",
]
