"""Out-of-band retry of a single target."""
from __future__ import annotations

from collections.abc import Mapping

from .errors import TargetNotSelected
from .models import ModelTarget, PromptRuntime
from .observability import emit_event, EventLogger
from .reveal import RevealEngine
from .session_state import SessionState
from .settlement import TargetOutcome, TargetRunner


class RetryController:
    """Re-runs exactly one target through the same settlement path as a batch run."""

    def __init__(
        self,
        runner: TargetRunner,
        state: SessionState,
        reveal: RevealEngine,
        targets: Mapping[str, ModelTarget],
        *,
        logger: EventLogger | None = None,
    ) -> None:
        self._runner = runner
        self._state = state
        self._reveal = reveal
        self._targets = targets
        self._logger = logger

    async def retry(
        self,
        target_id: str,
        prompt: PromptRuntime,
        variables: Mapping[str, str],
    ) -> TargetOutcome:
        if not self._state.is_selected(target_id):
            raise TargetNotSelected(f"target is not part of this run: {target_id}")
        target = self._targets.get(target_id)
        if target is None:
            raise TargetNotSelected(f"unknown model target: {target_id}")
        self._reveal.cancel(target_id)
        self._state.reset_target(target_id)
        attempt = self._state.begin_attempt(target_id)
        emit_event(
            self._logger,
            "retry_started",
            {"target_id": target_id, "attempt": attempt},
        )
        return await self._runner.run(target, attempt, prompt, variables)


__all__ = ["RetryController"]
