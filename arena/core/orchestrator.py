"""Arena session: wires selection, scheduling, reveal, retry and feedback."""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import logging

from .credentials import MappingSecretStore, SecretStore
from .errors import RunInProgress
from .execution import ModelExecutionClient, ModelExecutionService, SimulatedExecutionService
from .feedback import FeedbackController
from .models import ArenaSettings, ModelTarget, PromptRuntime, ProviderRecord
from .observability import bind, EventLogger
from .retry import RetryController
from .reveal import RevealEngine, SleepFn
from .scheduler import BatchPolicy, BatchScheduler, PersistContext, RunReport
from .session_state import SessionState
from .settlement import TargetOutcome, TargetRunner
from .store import BattleStore
from .targets import LimitCallback, TargetSet

LOGGER = logging.getLogger(__name__)


class ArenaSession:
    """1 回のアリーナ画面に相当するセッション。

    ``run()`` のたびに新しい ``SessionState`` を作り、前回の表示アニメーションを
    止める。``retry`` / ``toggle_vote`` / ``toggle_winner`` は最新の状態に対して動く。
    """

    def __init__(
        self,
        catalog: Sequence[ModelTarget],
        providers: Mapping[str, ProviderRecord],
        prompt: PromptRuntime,
        *,
        settings: ArenaSettings | None = None,
        variables: Mapping[str, str] | None = None,
        secrets: SecretStore | None = None,
        service: ModelExecutionService | None = None,
        store: BattleStore | None = None,
        workspace: str | None = None,
        logger: EventLogger | None = None,
        sleep: SleepFn | None = None,
        remembered_selection: Iterable[str] | None = None,
        on_limit_reached: LimitCallback | None = None,
    ) -> None:
        self._settings = settings or ArenaSettings()
        self._prompt = prompt
        self._variables: dict[str, str] = dict(variables or {})
        self._store = store
        self._workspace = workspace
        self._logger = logger
        self._sleep = sleep
        self._client = ModelExecutionClient(
            providers,
            secrets if secrets is not None else MappingSecretStore(),
            service if service is not None else SimulatedExecutionService(),
        )
        self.targets = TargetSet(
            catalog,
            self._settings.max_concurrent,
            logger=logger,
            on_limit_reached=on_limit_reached,
        )
        if remembered_selection is not None and self._settings.remember_last_selection:
            self.targets.restore(remembered_selection)
        self._running = False
        self._run_count = 0
        self._run_logger = self._logger
        self._install(SessionState())

    def _install(self, state: SessionState) -> None:
        logger = self._run_logger
        self._state = state
        self._reveal = RevealEngine(state, sleep=self._sleep)
        self._runner = TargetRunner(self._client, state, self._reveal, logger=logger)
        self._retry = RetryController(
            self._runner, state, self._reveal, self.targets.catalog, logger=logger
        )
        self._feedback = FeedbackController(
            state, self.targets.catalog, store=self._store, logger=logger
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def reveal(self) -> RevealEngine:
        return self._reveal

    @property
    def settings(self) -> ArenaSettings:
        return self._settings

    @property
    def prompt(self) -> PromptRuntime:
        return self._prompt

    @property
    def variables(self) -> dict[str, str]:
        return dict(self._variables)

    @property
    def running(self) -> bool:
        return self._running

    def bind_variable(self, name: str, value: str) -> None:
        self._variables[name] = value

    def bind_variables(self, values: Mapping[str, str]) -> None:
        self._variables.update(values)

    async def run(self) -> RunReport:
        if self._running:
            raise RunInProgress("an arena run is already in progress")
        targets = self.targets.validate(self._prompt, self._variables)
        self._running = True
        try:
            self._reveal.cancel_all()
            self._run_count += 1
            self._run_logger = bind(self._logger, run=self._run_count)
            self._install(SessionState(target.id for target in targets))
            scheduler = BatchScheduler(
                self._runner,
                self._state,
                BatchPolicy.from_settings(self._settings),
                store=self._store,
                cost_warning_threshold=self._settings.cost_warning_threshold,
                logger=self._run_logger,
            )
            persist = PersistContext(
                workspace=self._workspace,
                prompt_content=self._prompt.content,
                auto_save=self._settings.auto_save_results,
            )
            LOGGER.debug("starting arena run for %d targets", len(targets))
            return await scheduler.run(
                targets, self._prompt, dict(self._variables), persist=persist
            )
        finally:
            self._running = False

    async def retry(self, target_id: str) -> TargetOutcome:
        return await self._retry.retry(target_id, self._prompt, dict(self._variables))

    async def toggle_vote(self, target_id: str) -> bool:
        return await self._feedback.toggle_vote(target_id)

    async def toggle_winner(self, target_id: str) -> str | None:
        return await self._feedback.toggle_winner(target_id)

    async def wait_for_reveals(self) -> None:
        for handle in list(self._reveal.active().values()):
            await handle.wait()

    def close(self) -> None:
        self._reveal.cancel_all()


__all__ = ["ArenaSession"]
