"""Model execution services behind the execution client boundary."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, UTC
import hashlib
import time
from typing import Any, Protocol
import uuid

import requests

from ..costs import calculate_cost
from ..errors import ExecutionError
from ..models import ExecutionMetadata, ExecutionResult, ModelTarget, PromptRuntime
from ..template import render_messages

__all__ = [
    "ExecutionRequest",
    "ModelExecutionService",
    "SimulatedExecutionService",
    "OpenAICompatibleService",
    "UNSUPPORTED_PROVIDERS",
]

DEFAULT_TEMPERATURE = 0.7

UNSUPPORTED_PROVIDERS: dict[str, str] = {
    "anthropic": "Anthropic requires its native messages API",
    "google": "Google Gemini API format is different, requires separate implementation",
    "github": "GitHub Copilot not yet implemented",
    "azure_openai": "Azure OpenAI requires deployment-specific URL configuration",
}


@dataclass(frozen=True)
class ExecutionRequest:
    """1 ターゲット分の実行要求。"""

    target: ModelTarget
    prompt: PromptRuntime
    variables: Mapping[str, str]
    credential: str = field(repr=False)
    endpoint: str | None


class ModelExecutionService(Protocol):
    async def execute(self, request: ExecutionRequest) -> ExecutionResult: ...


def _now_ts() -> int:
    return int(datetime.now(UTC).timestamp())


def _build_result(
    request: ExecutionRequest,
    output: str,
    *,
    latency_ms: int,
    tokens_input: int,
    tokens_output: int,
) -> ExecutionResult:
    prompt = request.prompt
    return ExecutionResult(
        id=str(uuid.uuid4()),
        output=output,
        metadata=ExecutionMetadata(
            model=prompt.model,
            provider=prompt.provider,
            latency_ms=latency_ms,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            cost_usd=calculate_cost(prompt.model, prompt.provider, tokens_input, tokens_output),
            timestamp=_now_ts(),
        ),
    )


class SimulatedExecutionService:
    """実際の API 呼び出しを伴わない簡易シミュレータ。"""

    def __init__(self, *, latency_scale: float = 0.0) -> None:
        self._latency_scale = latency_scale

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        messages = render_messages(request.prompt, request.variables)
        prompt_text = "\n".join(message["content"] for message in messages)
        # 擬似レイテンシ（文字数に比例）
        latency_ms = min(len(prompt_text) * 5, 1500)
        if self._latency_scale > 0:
            await asyncio.sleep(latency_ms / 1000.0 * self._latency_scale)
        seed_material = f"{request.target.id}:{request.prompt.model}:{prompt_text}".encode()
        digest = hashlib.sha256(seed_material).hexdigest()
        normalized = prompt_text.lower()
        if "return success" in normalized:
            output = "SUCCESS"
        else:
            output = "SIMULATED:" + digest[:24]
        return _build_result(
            request,
            output,
            latency_ms=latency_ms,
            tokens_input=max(1, len(prompt_text.split())),
            tokens_output=max(1, len(output.split())),
        )


def _extract_status_code(exc: Exception) -> int | None:
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _normalize_error(exc: Exception, provider: str) -> ExecutionError:
    if isinstance(exc, ExecutionError):
        return exc
    if isinstance(exc, requests.exceptions.Timeout):
        return ExecutionError(f"{provider}: request timed out: {exc}")
    if isinstance(exc, requests.exceptions.ConnectionError):
        return ExecutionError(f"{provider}: connection failed: {exc}")
    if isinstance(exc, requests.exceptions.HTTPError):
        code = _extract_status_code(exc)
        if code in {401, 403}:
            return ExecutionError(f"{provider}: authentication failed (HTTP {code})")
        if code == 429:
            return ExecutionError(f"{provider}: rate limited (HTTP 429)")
        return ExecutionError(f"{provider}: HTTP {code}: {exc}")
    return ExecutionError(f"{provider}: {exc}")


def _coerce_text(payload: Mapping[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ExecutionError("response contained no choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, Mapping) else None
    content = message.get("content") if isinstance(message, Mapping) else None
    if not isinstance(content, str):
        raise ExecutionError("response choice had no text content")
    return content


def _coerce_usage(payload: Mapping[str, Any]) -> tuple[int, int]:
    usage = payload.get("usage")
    if not isinstance(usage, Mapping):
        return 0, 0
    try:
        return int(usage.get("prompt_tokens") or 0), int(usage.get("completion_tokens") or 0)
    except (TypeError, ValueError):
        return 0, 0


class OpenAICompatibleService:
    """Chat completions over an OpenAI-compatible HTTP endpoint."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout_s: float = 120.0,
    ) -> None:
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        return await asyncio.to_thread(self._execute_sync, request)

    def _build_payload(self, request: ExecutionRequest) -> dict[str, Any]:
        prompt = request.prompt
        parameters = prompt.parameters
        payload: dict[str, Any] = {
            "model": prompt.model,
            "messages": render_messages(prompt, request.variables),
            "temperature": (
                parameters.temperature
                if parameters.temperature is not None
                else DEFAULT_TEMPERATURE
            ),
        }
        if parameters.top_p is not None:
            payload["top_p"] = parameters.top_p
        if parameters.max_tokens is not None:
            payload["max_tokens"] = parameters.max_tokens
        return payload

    def _execute_sync(self, request: ExecutionRequest) -> ExecutionResult:
        provider = request.prompt.provider
        reason = UNSUPPORTED_PROVIDERS.get(provider)
        if reason is not None:
            raise ExecutionError(reason)
        if not request.endpoint:
            raise ExecutionError(f"{provider}: no endpoint configured")
        payload = self._build_payload(request)
        headers = {"Content-Type": "application/json"}
        if request.credential:
            headers["Authorization"] = f"Bearer {request.credential}"
        url = f"{request.endpoint.rstrip('/')}/chat/completions"
        ts0 = time.monotonic()
        try:
            response = self._session.post(
                url, json=payload, headers=headers, timeout=self._timeout_s
            )
            try:
                response.raise_for_status()
                data = response.json()
            finally:
                response.close()
        except Exception as exc:  # noqa: BLE001 - normalized to ExecutionError
            raise _normalize_error(exc, provider) from exc
        latency_ms = int((time.monotonic() - ts0) * 1000)
        if not isinstance(data, Mapping):
            raise ExecutionError(f"{provider}: unexpected response payload")
        output = _coerce_text(data)
        tokens_input, tokens_output = _coerce_usage(data)
        return _build_result(
            request,
            output,
            latency_ms=latency_ms,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
        )
