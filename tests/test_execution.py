from __future__ import annotations

from typing import Any

import pytest
import requests

from arena.core.credentials import MappingSecretStore
from arena.core.errors import CredentialUnavailable, ExecutionError
from arena.core.execution import (
    ExecutionRequest,
    ModelExecutionClient,
    OpenAICompatibleService,
    SimulatedExecutionService,
)
from arena.core.models import (
    ModelTarget,
    PromptMessage,
    PromptParameters,
    PromptRuntime,
    ProviderRecord,
)


class _FakeResponse:
    def __init__(self, status_code: int, payload: Any) -> None:
        self.status_code = status_code
        self._payload = payload
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)  # type: ignore[arg-type]

    def json(self) -> Any:
        return self._payload

    def close(self) -> None:
        self.closed = True


class _FakeSession:
    def __init__(self, response: _FakeResponse | Exception) -> None:
        self._response = response
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def _request(
    prompt: PromptRuntime,
    *,
    provider_type: str = "deepseek",
    credential: str = "key-1",
    endpoint: str | None = "https://api.deepseek.com/v1/",
    variables: dict[str, str] | None = None,
) -> ExecutionRequest:
    target = ModelTarget.build(
        model_id="deepseek-chat", provider_name="deepseek", provider_type=provider_type
    )
    return ExecutionRequest(
        target=target,
        prompt=prompt.for_target(target),
        variables=variables if variables is not None else {"topic": "asyncio", "audience": "ops"},
        credential=credential,
        endpoint=endpoint,
    )


@pytest.mark.asyncio
async def test_openai_compatible_posts_chat_completion(prompt: PromptRuntime) -> None:
    response = _FakeResponse(
        200,
        {
            "choices": [{"message": {"role": "assistant", "content": "done"}}],
            "usage": {"prompt_tokens": 1000, "completion_tokens": 2000},
        },
    )
    session = _FakeSession(response)
    service = OpenAICompatibleService(session=session)  # type: ignore[arg-type]

    result = await service.execute(_request(prompt))

    call = session.calls[0]
    assert call["url"] == "https://api.deepseek.com/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer key-1"
    assert call["json"]["model"] == "deepseek-chat"
    assert call["json"]["temperature"] == 0.7
    assert "max_tokens" not in call["json"]
    assert call["json"]["messages"][1] == {"role": "user", "content": "Summarize asyncio for ops."}
    assert result.output == "done"
    assert result.metadata.tokens_input == 1000
    assert result.metadata.tokens_output == 2000
    assert result.metadata.provider == "deepseek"
    assert result.metadata.cost_usd == pytest.approx(0.00014 + 0.00056)
    assert response.closed


@pytest.mark.asyncio
async def test_prompt_parameters_are_forwarded(prompt: PromptRuntime) -> None:
    session = _FakeSession(_FakeResponse(200, {"choices": [{"message": {"content": "ok"}}]}))
    service = OpenAICompatibleService(session=session)  # type: ignore[arg-type]
    tuned = PromptRuntime(
        name=prompt.name,
        provider=prompt.provider,
        model=prompt.model,
        messages=prompt.messages,
        parameters=PromptParameters(temperature=0.1, top_p=0.9, max_tokens=64),
    )

    result = await service.execute(_request(tuned, credential=""))

    payload = session.calls[0]["json"]
    assert payload["temperature"] == 0.1
    assert payload["top_p"] == 0.9
    assert payload["max_tokens"] == 64
    assert "Authorization" not in session.calls[0]["headers"]
    assert result.metadata.tokens_input == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "fragment"),
    [(401, "authentication failed"), (429, "rate limited"), (500, "HTTP 500")],
)
async def test_http_errors_are_normalized(prompt: PromptRuntime, status: int, fragment: str) -> None:
    session = _FakeSession(_FakeResponse(status, {}))
    service = OpenAICompatibleService(session=session)  # type: ignore[arg-type]

    with pytest.raises(ExecutionError, match=fragment):
        await service.execute(_request(prompt))


@pytest.mark.asyncio
async def test_timeout_is_normalized(prompt: PromptRuntime) -> None:
    session = _FakeSession(requests.exceptions.Timeout("slow"))
    service = OpenAICompatibleService(session=session)  # type: ignore[arg-type]

    with pytest.raises(ExecutionError, match="timed out"):
        await service.execute(_request(prompt))


@pytest.mark.asyncio
async def test_payload_without_choices_is_an_error(prompt: PromptRuntime) -> None:
    session = _FakeSession(_FakeResponse(200, {"choices": []}))
    service = OpenAICompatibleService(session=session)  # type: ignore[arg-type]

    with pytest.raises(ExecutionError, match="no choices"):
        await service.execute(_request(prompt))


@pytest.mark.asyncio
async def test_unsupported_provider_and_missing_endpoint(prompt: PromptRuntime) -> None:
    session = _FakeSession(_FakeResponse(200, {}))
    service = OpenAICompatibleService(session=session)  # type: ignore[arg-type]

    with pytest.raises(ExecutionError, match="Anthropic"):
        await service.execute(_request(prompt, provider_type="anthropic"))
    with pytest.raises(ExecutionError, match="no endpoint"):
        await service.execute(_request(prompt, endpoint=None))
    assert session.calls == []


@pytest.mark.asyncio
async def test_simulated_service_is_deterministic(prompt: PromptRuntime) -> None:
    service = SimulatedExecutionService()

    first = await service.execute(_request(prompt))
    second = await service.execute(_request(prompt))

    assert first.output == second.output
    assert first.output.startswith("SIMULATED:")
    assert first.id != second.id


@pytest.mark.asyncio
async def test_simulated_service_success_marker() -> None:
    prompt = PromptRuntime(
        name="p",
        provider="openai",
        model="gpt-4o",
        messages=(PromptMessage(role="user", content="Please RETURN SUCCESS now"),),
    )

    result = await SimulatedExecutionService().execute(_request(prompt, variables={}))

    assert result.output == "SUCCESS"


@pytest.mark.asyncio
async def test_client_resolves_credential_and_endpoint(prompt: PromptRuntime) -> None:
    captured: list[ExecutionRequest] = []

    class _Capture:
        async def execute(self, request: ExecutionRequest) -> Any:
            captured.append(request)
            return await SimulatedExecutionService().execute(request)

    providers = {
        "deepseek": ProviderRecord(
            name="deepseek", provider="deepseek", api_key_source="keychain", api_key_ref="DS"
        )
    }
    client = ModelExecutionClient(providers, MappingSecretStore({"DS": "ds-key"}), _Capture())
    target = ModelTarget.build(
        model_id="deepseek-chat", provider_name="deepseek", provider_type="deepseek"
    )

    await client.execute(target, prompt, {"topic": "a", "audience": "b"})

    request = captured[0]
    assert request.credential == "ds-key"
    assert request.endpoint == "https://api.deepseek.com/v1"
    assert request.prompt.model == "deepseek-chat"
    assert request.prompt.provider == "deepseek"
    assert "ds-key" not in repr(request)


@pytest.mark.asyncio
async def test_client_surfaces_credential_failure(prompt: PromptRuntime) -> None:
    providers = {
        "deepseek": ProviderRecord(
            name="deepseek", provider="deepseek", api_key_source="keychain", api_key_ref="DS"
        )
    }
    client = ModelExecutionClient(providers, MappingSecretStore(), SimulatedExecutionService())
    target = ModelTarget.build(
        model_id="deepseek-chat", provider_name="deepseek", provider_type="deepseek"
    )

    with pytest.raises(CredentialUnavailable):
        await client.execute(target, prompt, {"topic": "a", "audience": "b"})


@pytest.mark.asyncio
async def test_client_wraps_unexpected_errors(prompt: PromptRuntime) -> None:
    class _Exploding:
        async def execute(self, request: ExecutionRequest) -> Any:
            raise ValueError("bad payload")

    providers = {"p": ProviderRecord(name="p", provider="openai")}
    client = ModelExecutionClient(providers, MappingSecretStore(), _Exploding())
    target = ModelTarget.build(model_id="gpt-4o", provider_name="p", provider_type="openai")

    with pytest.raises(ExecutionError, match="bad payload") as excinfo:
        await client.execute(target, prompt, {"topic": "a", "audience": "b"})

    assert isinstance(excinfo.value.__cause__, ValueError)
