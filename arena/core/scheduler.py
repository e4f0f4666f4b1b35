"""Batch-barrier scheduling of a run's targets."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import logging

from .errors import AllTargetsFailed
from .models import ArenaSettings, BattleOutput, ExecutionResult, ModelTarget, PromptRuntime
from .observability import emit_event, EventLogger
from .session_state import SessionState
from .settlement import TargetOutcome, TargetRunner
from .store import BattleStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchPolicy:
    """``concurrent=False`` runs targets one by one; otherwise in batches of ``batch_size``."""

    concurrent: bool = True
    batch_size: int = 3

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1: {self.batch_size}")

    @classmethod
    def from_settings(cls, settings: ArenaSettings) -> BatchPolicy:
        return cls(
            concurrent=settings.concurrent_execution,
            batch_size=settings.max_concurrent,
        )

    def partition(self, targets: Sequence[ModelTarget]) -> list[list[ModelTarget]]:
        size = self.batch_size if self.concurrent else 1
        return [list(targets[index : index + size]) for index in range(0, len(targets), size)]


@dataclass(frozen=True)
class PersistContext:
    """Inputs needed to save a finished run."""

    workspace: str | None
    prompt_content: str
    auto_save: bool = True


@dataclass
class RunReport:
    results: dict[str, ExecutionResult]
    errors: dict[str, str]
    persisted_session_id: str | None = None
    persistence_error: str | None = None
    total_cost_usd: float = 0.0
    cost_warning: bool = False
    superseded: list[str] = field(default_factory=list)


class BatchScheduler:
    """Dispatches batches concurrently and waits for each one to fully settle."""

    def __init__(
        self,
        runner: TargetRunner,
        state: SessionState,
        policy: BatchPolicy,
        *,
        store: BattleStore | None = None,
        cost_warning_threshold: float | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self._runner = runner
        self._state = state
        self._policy = policy
        self._store = store
        self._cost_warning_threshold = cost_warning_threshold
        self._logger = logger

    async def run(
        self,
        targets: Sequence[ModelTarget],
        prompt: PromptRuntime,
        variables: Mapping[str, str],
        *,
        persist: PersistContext | None = None,
    ) -> RunReport:
        attempts = {target.id: self._state.begin_attempt(target.id) for target in targets}
        batches = self._policy.partition(targets)
        emit_event(
            self._logger,
            "run_started",
            {
                "targets": [target.id for target in targets],
                "concurrent": self._policy.concurrent,
                "batch_size": self._policy.batch_size,
                "batches": len(batches),
            },
        )

        superseded: list[str] = []
        for index, batch in enumerate(batches):
            emit_event(
                self._logger,
                "batch_started",
                {"batch_index": index, "targets": [target.id for target in batch]},
            )
            outcomes: list[TargetOutcome] = await asyncio.gather(
                *(
                    self._runner.run(target, attempts[target.id], prompt, variables)
                    for target in batch
                )
            )
            superseded.extend(o.target_id for o in outcomes if o.status == "superseded")
            emit_event(
                self._logger,
                "batch_settled",
                {
                    "batch_index": index,
                    "ok": [o.target_id for o in outcomes if o.status == "ok"],
                    "error": [o.target_id for o in outcomes if o.status == "error"],
                },
            )

        # a retry may have superseded a batch attempt; the state holds the latest outcome
        results = {
            target.id: self._state.results[target.id]
            for target in targets
            if target.id in self._state.results
        }
        errors = {
            target.id: self._state.errors[target.id]
            for target in targets
            if target.id in self._state.errors
        }
        if not results:
            emit_event(
                self._logger,
                "run_failed",
                {"errors": dict(errors), "superseded": list(superseded)},
            )
            raise AllTargetsFailed(failures=errors)

        report = RunReport(results=results, errors=errors, superseded=superseded)
        report.total_cost_usd = round(
            sum(result.metadata.cost_usd for result in results.values()), 6
        )
        threshold = self._cost_warning_threshold
        if threshold is not None and report.total_cost_usd > threshold:
            report.cost_warning = True
            emit_event(
                self._logger,
                "cost_warning",
                {"total_cost_usd": report.total_cost_usd, "threshold": threshold},
            )

        if persist is not None:
            await self._persist(targets, results, prompt, variables, persist, report)
        report.persisted_session_id = self._state.persisted_session_id
        emit_event(
            self._logger,
            "run_completed",
            {
                "results": sorted(results),
                "errors": sorted(errors),
                "persisted_session_id": report.persisted_session_id,
                "total_cost_usd": report.total_cost_usd,
            },
        )
        return report

    async def _persist(
        self,
        targets: Sequence[ModelTarget],
        results: Mapping[str, ExecutionResult],
        prompt: PromptRuntime,
        variables: Mapping[str, str],
        persist: PersistContext,
        report: RunReport,
    ) -> None:
        if self._store is None or not persist.auto_save:
            return
        if self._state.persisted_session_id is not None:
            return
        if not persist.workspace:
            LOGGER.warning("no workspace configured; skipping battle save")
            return
        by_id = {target.id: target for target in targets}
        outputs = [
            BattleOutput.from_result(by_id.get(target_id), result)
            for target_id, result in results.items()
        ]
        try:
            session_id = await self._store.persist_session(
                persist.workspace,
                persist.prompt_content or prompt.content,
                dict(variables),
                list(results),
                outputs,
            )
        except Exception as exc:  # noqa: BLE001 - persistence is non-fatal
            report.persistence_error = str(exc) or type(exc).__name__
            LOGGER.warning("failed to save arena battle: %s", report.persistence_error)
            emit_event(
                self._logger,
                "persistence_failed",
                {"error_type": type(exc).__name__, "error_message": report.persistence_error},
            )
            return
        self._state.mark_persisted(session_id)
        emit_event(
            self._logger,
            "session_persisted",
            {"session_id": session_id, "models": list(results)},
        )


__all__ = ["BatchPolicy", "BatchScheduler", "PersistContext", "RunReport"]
