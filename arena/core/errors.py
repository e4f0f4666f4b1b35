"""Normalized exception hierarchy for the arena core."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass


class ArenaError(Exception):
    """Base class for arena-originated errors."""


class PreflightError(ArenaError):
    """Base class for errors raised before any target is dispatched."""


class EmptySelection(PreflightError):
    """Raised when a run is requested with no selected targets."""

    def __init__(self, message: str = "no model target selected") -> None:
        super().__init__(message)


class MissingVariable(PreflightError):
    """Raised when prompt variables have no bound value."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names: tuple[str, ...] = tuple(names)
        super().__init__(f"Missing variables: {', '.join(self.names)}")


class TargetError(ArenaError):
    """Base class for per-target failures captured into the error map."""


class ExecutionError(TargetError):
    """Raised when a single target fails to produce a result."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class CredentialUnavailable(ExecutionError):
    """Raised when the credential for a provider cannot be resolved."""


@dataclass(slots=True, init=False)
class AllTargetsFailed(ArenaError):
    """Raised when every target of a run failed."""

    message: str
    failures: dict[str, str]

    def __init__(
        self,
        message: str = "all model targets failed",
        *,
        failures: Mapping[str, str] | None = None,
    ) -> None:
        Exception.__init__(self, message)
        self.message = message
        self.failures = dict(failures) if failures is not None else {}

    def __str__(self) -> str:
        return self.message


class PersistenceError(ArenaError):
    """Raised when the battle store cannot save or update a session."""


class ConfigError(ArenaError):
    """Raised when arena configuration is invalid."""


class SessionStateError(ArenaError):
    """Raised when a session state transition is not allowed."""


class UnknownTarget(SessionStateError):
    """Raised when an id is not part of the model catalog."""


class TargetNotSelected(SessionStateError):
    """Raised when an operation needs a target outside the selection."""


class VoteNotAllowed(SessionStateError):
    """Raised when voting for a target that has no result."""


class RunInProgress(SessionStateError):
    """Raised when a run is started while another one is still executing."""


__all__ = [
    "ArenaError",
    "PreflightError",
    "EmptySelection",
    "MissingVariable",
    "TargetError",
    "ExecutionError",
    "CredentialUnavailable",
    "AllTargetsFailed",
    "PersistenceError",
    "ConfigError",
    "SessionStateError",
    "UnknownTarget",
    "TargetNotSelected",
    "VoteNotAllowed",
    "RunInProgress",
]
