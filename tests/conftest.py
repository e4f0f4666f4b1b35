"""pytest 共通フィクスチャ: フェイクのサービス・ストア・ロガー。"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from pathlib import Path
import sys
from typing import Any

import pytest

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from arena.core.errors import PersistenceError  # noqa: E402
from arena.core.execution.service import ExecutionRequest  # noqa: E402
from arena.core.models import (  # noqa: E402
    BattleOutput,
    ExecutionMetadata,
    ExecutionResult,
    ModelTarget,
    PromptMessage,
    PromptRuntime,
    ProviderRecord,
)


class FakeLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        self.events.append((event_type, dict(record)))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for logged, payload in self.events if logged == event_type]


class RecordingSleep:
    """Reveal ticks without wall-clock waiting."""

    def __init__(self) -> None:
        self.durations: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.durations.append(delay)
        await asyncio.sleep(0)


def make_result(
    output: str,
    *,
    model: str = "demo-model",
    provider: str = "openai",
    cost_usd: float = 0.0,
    latency_ms: int = 10,
) -> ExecutionResult:
    return ExecutionResult(
        id=f"result-{output}",
        output=output,
        metadata=ExecutionMetadata(
            model=model,
            provider=provider,
            latency_ms=latency_ms,
            tokens_input=3,
            tokens_output=5,
            cost_usd=cost_usd,
            timestamp=1_700_000_000,
        ),
    )


class ScriptedService:
    """Per-target scripted execution service.

    ``script(target_id, *outcomes)`` queues outputs (``str``) or exceptions; the
    last outcome repeats. ``hold(target_id)`` returns an event the next call for
    that target waits on before answering.
    """

    def __init__(self, *, cost_usd: float = 0.0) -> None:
        self._outcomes: dict[str, list[str | Exception]] = {}
        self._holds: dict[str, list[asyncio.Event]] = {}
        self._cost_usd = cost_usd
        self.calls: list[str] = []
        self.requests: list[ExecutionRequest] = []
        self.active = 0
        self.max_active = 0

    def script(self, target_id: str, *outcomes: str | Exception) -> None:
        self._outcomes[target_id] = list(outcomes)

    def hold(self, target_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self._holds.setdefault(target_id, []).append(event)
        return event

    def _next_outcome(self, target_id: str) -> str | Exception:
        queued = self._outcomes.get(target_id)
        if not queued:
            return f"{target_id}:ok"
        if len(queued) > 1:
            return queued.pop(0)
        return queued[0]

    async def wait_for_calls(self, count: int, timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while len(self.calls) < count:
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout)

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        target_id = request.target.id
        holds = self._holds.get(target_id)
        gate = holds.pop(0) if holds else None
        outcome = self._next_outcome(target_id)
        self.calls.append(target_id)
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.active -= 1
        if isinstance(outcome, Exception):
            raise outcome
        return make_result(
            outcome,
            model=request.prompt.model,
            provider=request.prompt.provider,
            cost_usd=self._cost_usd,
        )


class RecordingStore:
    """Battle store that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.persist_calls: list[dict[str, Any]] = []
        self.feedback_calls: list[tuple[str, str | None, dict[str, int]]] = []
        self.fail_persist = False
        self.fail_feedback = False
        self._counter = 0

    async def persist_session(
        self,
        workspace: str,
        prompt_content: str,
        variables: Mapping[str, str],
        target_ids: Sequence[str],
        outputs: Sequence[BattleOutput],
    ) -> str:
        if self.fail_persist:
            raise PersistenceError("disk full")
        self._counter += 1
        self.persist_calls.append(
            {
                "workspace": workspace,
                "prompt_content": prompt_content,
                "variables": dict(variables),
                "target_ids": list(target_ids),
                "outputs": list(outputs),
            }
        )
        return f"battle-{self._counter}"

    async def update_feedback(
        self, session_id: str, winner: str | None, votes: Mapping[str, int]
    ) -> None:
        if self.fail_feedback:
            raise PersistenceError("battle locked")
        self.feedback_calls.append((session_id, winner, dict(votes)))


@pytest.fixture
def fake_logger() -> FakeLogger:
    return FakeLogger()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def service() -> ScriptedService:
    return ScriptedService()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def catalog() -> list[ModelTarget]:
    return [
        ModelTarget.build(
            model_id="gpt-4o", provider_name="openai-main", provider_type="openai", model_name="GPT-4o"
        ),
        ModelTarget.build(
            model_id="deepseek-chat",
            provider_name="deepseek",
            provider_type="deepseek",
            model_name="DeepSeek Chat",
        ),
        ModelTarget.build(
            model_id="llama3", provider_name="local", provider_type="ollama", model_name="Llama 3"
        ),
        ModelTarget.build(
            model_id="gpt-4o-mini",
            provider_name="openai-main",
            provider_type="openai",
            model_name="GPT-4o mini",
        ),
    ]


@pytest.fixture
def providers() -> dict[str, ProviderRecord]:
    return {
        "openai-main": ProviderRecord(
            name="openai-main", provider="openai", api_key_source="direct", api_key="sk-test"
        ),
        "deepseek": ProviderRecord(
            name="deepseek", provider="deepseek", api_key_source="direct", api_key="ds-test"
        ),
        "local": ProviderRecord(name="local", provider="ollama"),
    }


@pytest.fixture
def prompt() -> PromptRuntime:
    return PromptRuntime(
        name="summarize",
        provider="openai",
        model="gpt-4o",
        messages=(
            PromptMessage(role="system", content="You are concise."),
            PromptMessage(role="user", content="Summarize {{topic}} for {{audience}}."),
        ),
    )


@pytest.fixture
def variables() -> dict[str, str]:
    return {"topic": "asyncio", "audience": "beginners"}
