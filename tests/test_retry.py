from __future__ import annotations

import asyncio

import pytest

from arena.core.credentials import MappingSecretStore
from arena.core.errors import ExecutionError, TargetNotSelected
from arena.core.execution import ModelExecutionClient
from arena.core.models import ModelTarget, PromptRuntime, ProviderRecord
from arena.core.retry import RetryController
from arena.core.reveal import RevealEngine
from arena.core.session_state import SessionState
from arena.core.settlement import TargetRunner
from conftest import FakeLogger, make_result, RecordingSleep, ScriptedService


def _controller(
    catalog: list[ModelTarget],
    providers: dict[str, ProviderRecord],
    service: ScriptedService,
    selected: list[str],
    logger: FakeLogger | None = None,
) -> tuple[RetryController, TargetRunner, SessionState, RevealEngine]:
    state = SessionState(selected)
    reveal = RevealEngine(state, sleep=RecordingSleep())
    client = ModelExecutionClient(providers, MappingSecretStore(), service)
    runner = TargetRunner(client, state, reveal, logger=logger)
    targets = {target.id: target for target in catalog}
    controller = RetryController(runner, state, reveal, targets, logger=logger)
    return controller, runner, state, reveal


@pytest.mark.asyncio
async def test_retry_only_touches_the_retried_target(
    catalog: list[ModelTarget],
    providers: dict[str, ProviderRecord],
    prompt: PromptRuntime,
    variables: dict[str, str],
    service: ScriptedService,
) -> None:
    a, b = catalog[0].id, catalog[1].id
    controller, _runner, state, reveal = _controller(catalog, providers, service, [a, b])
    state.settle_failure(a, "boom")
    state.settle_success(b, make_result("kept"))
    state.set_votes({b})

    outcome = await controller.retry(a, prompt, variables)
    reveal.cancel_all()

    assert outcome.status == "ok"
    assert state.results[a].output == f"{a}:ok"
    assert a not in state.errors
    assert state.results[b].output == "kept"
    assert state.votes == {b}
    assert service.calls == [a]


@pytest.mark.asyncio
async def test_retry_failure_lands_in_errors(
    catalog: list[ModelTarget],
    providers: dict[str, ProviderRecord],
    prompt: PromptRuntime,
    variables: dict[str, str],
    service: ScriptedService,
) -> None:
    a = catalog[0].id
    service.script(a, ExecutionError("still broken"))
    logger = FakeLogger()
    controller, _runner, state, _reveal = _controller(catalog, providers, service, [a], logger)
    state.settle_success(a, make_result("old"))

    outcome = await controller.retry(a, prompt, variables)

    assert outcome.status == "error"
    assert state.errors == {a: "still broken"}
    assert a not in state.results
    assert logger.of_type("retry_started") == [{"target_id": a, "attempt": 1}]


@pytest.mark.asyncio
async def test_retry_rejects_unselected_target(
    catalog: list[ModelTarget],
    providers: dict[str, ProviderRecord],
    prompt: PromptRuntime,
    variables: dict[str, str],
    service: ScriptedService,
) -> None:
    controller, _runner, _state, _reveal = _controller(
        catalog, providers, service, [catalog[0].id]
    )

    with pytest.raises(TargetNotSelected):
        await controller.retry(catalog[1].id, prompt, variables)
    assert service.calls == []


@pytest.mark.asyncio
async def test_stale_attempt_resolving_later_is_discarded(
    catalog: list[ModelTarget],
    providers: dict[str, ProviderRecord],
    prompt: PromptRuntime,
    variables: dict[str, str],
    service: ScriptedService,
) -> None:
    target = catalog[0]
    service.script(target.id, "stale", "fresh")
    first_gate = service.hold(target.id)
    second_gate = service.hold(target.id)
    logger = FakeLogger()
    controller, runner, state, reveal = _controller(
        catalog, providers, service, [target.id], logger
    )

    first_attempt = state.begin_attempt(target.id)
    first = asyncio.create_task(runner.run(target, first_attempt, prompt, variables))
    await service.wait_for_calls(1)
    retried = asyncio.create_task(controller.retry(target.id, prompt, variables))
    await service.wait_for_calls(2)

    second_gate.set()
    fresh = await retried
    first_gate.set()
    stale = await first
    reveal.cancel_all()

    assert fresh.status == "ok"
    assert stale.status == "superseded"
    assert state.results[target.id].output == "fresh"
    assert logger.of_type("attempt_superseded")[0]["attempt"] == first_attempt


@pytest.mark.asyncio
async def test_stale_attempt_resolving_first_keeps_target_loading(
    catalog: list[ModelTarget],
    providers: dict[str, ProviderRecord],
    prompt: PromptRuntime,
    variables: dict[str, str],
    service: ScriptedService,
) -> None:
    target = catalog[0]
    service.script(target.id, ExecutionError("stale failure"), "fresh")
    first_gate = service.hold(target.id)
    second_gate = service.hold(target.id)
    controller, runner, state, reveal = _controller(catalog, providers, service, [target.id])

    first_attempt = state.begin_attempt(target.id)
    first = asyncio.create_task(runner.run(target, first_attempt, prompt, variables))
    await service.wait_for_calls(1)
    retried = asyncio.create_task(controller.retry(target.id, prompt, variables))
    await service.wait_for_calls(2)

    first_gate.set()
    stale = await first

    assert stale.status == "superseded"
    assert state.status(target.id) == "loading"
    assert target.id not in state.errors

    second_gate.set()
    fresh = await retried
    reveal.cancel_all()

    assert fresh.status == "ok"
    assert state.status(target.id) == "result"
