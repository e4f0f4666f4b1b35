"""Per-target execution and settlement shared by batch runs and retries."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from typing import Literal

from .errors import ExecutionError
from .execution import ModelExecutionClient
from .models import ExecutionResult, ModelTarget, PromptRuntime
from .observability import emit_event, EventLogger
from .reveal import RevealEngine
from .session_state import SessionState

LOGGER = logging.getLogger(__name__)

OutcomeStatus = Literal["ok", "error", "superseded"]


@dataclass(frozen=True, slots=True)
class TargetOutcome:
    target_id: str
    attempt: int
    status: OutcomeStatus
    result: ExecutionResult | None = None
    error: str | None = None


def _error_message(exc: BaseException) -> str:
    message = str(exc)
    return message or type(exc).__name__


class TargetRunner:
    """Runs one attempt for one target and applies its terminal state."""

    def __init__(
        self,
        client: ModelExecutionClient,
        state: SessionState,
        reveal: RevealEngine,
        *,
        logger: EventLogger | None = None,
    ) -> None:
        self._client = client
        self._state = state
        self._reveal = reveal
        self._logger = logger

    async def run(
        self,
        target: ModelTarget,
        attempt: int,
        prompt: PromptRuntime,
        variables: Mapping[str, str],
    ) -> TargetOutcome:
        try:
            result = await self._client.execute(target, prompt, variables)
        except Exception as exc:  # noqa: BLE001 - isolated per target
            message = _error_message(exc)
            if not isinstance(exc, ExecutionError):
                LOGGER.warning("unexpected failure for %s", target.id, exc_info=exc)
            return self._settle_failure(target, attempt, message, exc)
        return self._settle_success(target, attempt, result)

    def _is_superseded(self, target: ModelTarget, attempt: int) -> bool:
        if self._state.is_current(target.id, attempt):
            return False
        emit_event(
            self._logger,
            "attempt_superseded",
            {
                "target_id": target.id,
                "attempt": attempt,
                "current_attempt": self._state.current_attempt(target.id),
            },
        )
        return True

    def _settle_success(
        self, target: ModelTarget, attempt: int, result: ExecutionResult
    ) -> TargetOutcome:
        if self._is_superseded(target, attempt):
            return TargetOutcome(target.id, attempt, "superseded", result=result)
        self._state.settle_success(target.id, result)
        self._reveal.start(target.id, result.output)
        emit_event(
            self._logger,
            "target_settled",
            {
                "target_id": target.id,
                "model": target.model_name,
                "provider": target.provider_name,
                "attempt": attempt,
                "status": "ok",
                "latency_ms": result.metadata.latency_ms,
                "tokens_in": result.metadata.tokens_input,
                "tokens_out": result.metadata.tokens_output,
                "cost_usd": result.metadata.cost_usd,
                "error_type": None,
                "error_message": None,
            },
        )
        return TargetOutcome(target.id, attempt, "ok", result=result)

    def _settle_failure(
        self, target: ModelTarget, attempt: int, message: str, exc: BaseException
    ) -> TargetOutcome:
        if self._is_superseded(target, attempt):
            return TargetOutcome(target.id, attempt, "superseded", error=message)
        self._state.settle_failure(target.id, message)
        emit_event(
            self._logger,
            "target_settled",
            {
                "target_id": target.id,
                "model": target.model_name,
                "provider": target.provider_name,
                "attempt": attempt,
                "status": "error",
                "latency_ms": None,
                "tokens_in": None,
                "tokens_out": None,
                "cost_usd": None,
                "error_type": type(exc).__name__,
                "error_message": message,
            },
        )
        return TargetOutcome(target.id, attempt, "error", error=message)


__all__ = ["OutcomeStatus", "TargetOutcome", "TargetRunner"]
