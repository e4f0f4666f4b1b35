"""Progressive reveal of already-complete outputs."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
import logging

from .session_state import SessionState

LOGGER = logging.getLogger(__name__)

MIN_INTERVAL_MS = 5.0
MAX_INTERVAL_MS = 50.0
REVEAL_TOTAL_MS = 2000.0

SleepFn = Callable[[float], Awaitable[None]]


def reveal_interval_ms(text: str) -> float:
    """Per-character interval: ``clamp(5, 50, 2000 / len(text))`` milliseconds."""

    if not text:
        return MAX_INTERVAL_MS
    return max(MIN_INTERVAL_MS, min(MAX_INTERVAL_MS, REVEAL_TOTAL_MS / len(text)))


def iter_prefixes(text: str) -> Iterator[str]:
    for end in range(1, len(text) + 1):
        yield text[:end]


class RevealHandle:
    """Cancellable handle for one target's reveal."""

    def __init__(self, target_id: str, text: str, interval_ms: float) -> None:
        self.target_id = target_id
        self.text = text
        self.interval_ms = interval_ms
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class RevealEngine:
    """Publishes increasing prefixes of a finished output into ``state.revealing``."""

    def __init__(self, state: SessionState, *, sleep: SleepFn | None = None) -> None:
        self._state = state
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._handles: dict[str, RevealHandle] = {}

    def start(self, target_id: str, text: str) -> RevealHandle:
        self.cancel(target_id)
        handle = RevealHandle(target_id, text, reveal_interval_ms(text))
        self._handles[target_id] = handle
        handle._task = asyncio.get_running_loop().create_task(
            self._run(handle), name=f"reveal:{target_id}"
        )
        return handle

    def cancel(self, target_id: str) -> None:
        handle = self._handles.pop(target_id, None)
        if handle is None:
            return
        handle.cancel()
        self._state.clear_revealing(target_id)

    def cancel_all(self) -> None:
        for target_id in list(self._handles):
            self.cancel(target_id)

    def active(self) -> dict[str, RevealHandle]:
        return {
            target_id: handle
            for target_id, handle in self._handles.items()
            if not handle.done
        }

    def handle(self, target_id: str) -> RevealHandle | None:
        return self._handles.get(target_id)

    def _is_live(self, handle: RevealHandle) -> bool:
        return (
            not handle.cancelled
            and self._handles.get(handle.target_id) is handle
            and handle.target_id in self._state.results
        )

    async def _run(self, handle: RevealHandle) -> None:
        target_id = handle.target_id
        delay_s = handle.interval_ms / 1000.0
        try:
            if not handle.text:
                if self._is_live(handle):
                    self._state.clear_revealing(target_id)
                return
            for prefix in iter_prefixes(handle.text):
                await self._sleep(delay_s)
                if not self._is_live(handle):
                    return
                self._state.set_revealing(target_id, prefix)
            # the final tick publishes the full text and retires the key
            self._state.clear_revealing(target_id)
        finally:
            if self._handles.get(target_id) is handle:
                del self._handles[target_id]


__all__ = [
    "RevealEngine",
    "RevealHandle",
    "iter_prefixes",
    "reveal_interval_ms",
]
