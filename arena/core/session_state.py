"""Keyed state projections for a single arena run.

All mutations are key-addressed copy-on-write swaps: a new mapping or set is
built with one key changed and then assigned, so a snapshot handed out
earlier never changes underneath its reader. Because the arena runs on a
single asyncio loop, each method body is atomic with respect to other tasks.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal

from .errors import SessionStateError
from .models import ExecutionResult

TargetStatus = Literal["pending", "loading", "result", "error"]


@dataclass(frozen=True, slots=True)
class StateChange:
    field: str
    key: str | None
    value: Any


StateListener = Callable[[StateChange], None]


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    selected: tuple[str, ...]
    statuses: Mapping[str, TargetStatus]
    votes: frozenset[str]
    winner: str | None
    persisted_session_id: str | None


class SessionState:
    """Loading / result / error / reveal projections plus scalar session fields."""

    def __init__(self, selected: Iterable[str] = ()) -> None:
        ordered: list[str] = []
        for target_id in selected:
            if target_id not in ordered:
                ordered.append(target_id)
        self._selected: tuple[str, ...] = tuple(ordered)
        self._loading: frozenset[str] = frozenset()
        self._results: dict[str, ExecutionResult] = {}
        self._errors: dict[str, str] = {}
        self._revealing: dict[str, str] = {}
        self._votes: frozenset[str] = frozenset()
        self._winner: str | None = None
        self._persisted_session_id: str | None = None
        self._attempts: dict[str, int] = {}
        self._listeners: list[StateListener] = []

    # --- read side ---

    @property
    def selected(self) -> tuple[str, ...]:
        return self._selected

    @property
    def loading(self) -> frozenset[str]:
        return self._loading

    @property
    def results(self) -> Mapping[str, ExecutionResult]:
        return MappingProxyType(self._results)

    @property
    def errors(self) -> Mapping[str, str]:
        return MappingProxyType(self._errors)

    @property
    def revealing(self) -> Mapping[str, str]:
        return MappingProxyType(self._revealing)

    @property
    def votes(self) -> frozenset[str]:
        return self._votes

    @property
    def winner(self) -> str | None:
        return self._winner

    @property
    def persisted_session_id(self) -> str | None:
        return self._persisted_session_id

    def is_selected(self, target_id: str) -> bool:
        return target_id in self._selected

    def status(self, target_id: str) -> TargetStatus:
        if target_id in self._loading:
            return "loading"
        if target_id in self._results:
            return "result"
        if target_id in self._errors:
            return "error"
        return "pending"

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            selected=self._selected,
            statuses=MappingProxyType(
                {target_id: self.status(target_id) for target_id in self._selected}
            ),
            votes=self._votes,
            winner=self._winner,
            persisted_session_id=self._persisted_session_id,
        )

    # --- listeners ---

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, field: str, key: str | None, value: Any) -> None:
        change = StateChange(field=field, key=key, value=value)
        for listener in tuple(self._listeners):
            listener(change)

    # --- attempts ---

    def begin_attempt(self, target_id: str) -> int:
        """Start a new logical attempt for ``target_id`` and mark it loading."""

        if (
            target_id in self._results
            or target_id in self._errors
            or target_id in self._revealing
        ):
            self.reset_target(target_id)
        attempt = self._attempts.get(target_id, 0) + 1
        self._attempts = {**self._attempts, target_id: attempt}
        self._set_loading(target_id, True)
        return attempt

    def current_attempt(self, target_id: str) -> int:
        return self._attempts.get(target_id, 0)

    def is_current(self, target_id: str, attempt: int) -> bool:
        return self._attempts.get(target_id, 0) == attempt

    # --- write side ---

    def _set_loading(self, target_id: str, loading: bool, *, notify: bool = True) -> bool:
        if loading:
            if target_id in self._loading:
                return False
            self._loading = self._loading | {target_id}
        else:
            if target_id not in self._loading:
                return False
            self._loading = self._loading - {target_id}
        if notify:
            self._notify("loading", target_id, loading)
        return True

    def settle_success(self, target_id: str, result: ExecutionResult) -> None:
        # result is written before loading is cleared; no await in between
        self._errors = _without(self._errors, target_id)
        self._results = {**self._results, target_id: result}
        cleared = self._set_loading(target_id, False, notify=False)
        self._notify("results", target_id, result)
        if cleared:
            self._notify("loading", target_id, False)

    def settle_failure(self, target_id: str, message: str) -> None:
        self._results = _without(self._results, target_id)
        self._revealing = _without(self._revealing, target_id)
        self._errors = {**self._errors, target_id: message}
        cleared = self._set_loading(target_id, False, notify=False)
        self._notify("errors", target_id, message)
        if cleared:
            self._notify("loading", target_id, False)

    def reset_target(self, target_id: str) -> None:
        """Drop result, error and reveal entries of one target."""

        self._results = _without(self._results, target_id)
        self._errors = _without(self._errors, target_id)
        self._revealing = _without(self._revealing, target_id)
        self._notify("reset", target_id, None)

    def set_revealing(self, target_id: str, text: str) -> None:
        if target_id not in self._results:
            raise SessionStateError(f"cannot reveal {target_id!r} without a result")
        self._revealing = {**self._revealing, target_id: text}
        self._notify("revealing", target_id, text)

    def clear_revealing(self, target_id: str) -> None:
        if target_id not in self._revealing:
            return
        self._revealing = _without(self._revealing, target_id)
        self._notify("revealing", target_id, None)

    def set_votes(self, votes: Iterable[str]) -> None:
        self._votes = frozenset(votes)
        self._notify("votes", None, self._votes)

    def set_winner(self, winner: str | None) -> None:
        self._winner = winner
        self._notify("winner", None, winner)

    def mark_persisted(self, session_id: str) -> None:
        if self._persisted_session_id == session_id:
            return
        if self._persisted_session_id is not None:
            raise SessionStateError(
                f"session already persisted as {self._persisted_session_id}"
            )
        self._persisted_session_id = session_id
        self._notify("persisted_session_id", None, session_id)


def _without(mapping: dict[str, Any], key: str) -> dict[str, Any]:
    if key not in mapping:
        return mapping
    return {k: v for k, v in mapping.items() if k != key}


__all__ = [
    "SessionSnapshot",
    "SessionState",
    "StateChange",
    "StateListener",
    "TargetStatus",
]
