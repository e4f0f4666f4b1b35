"""Adapter between a model target and the model execution service."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging

from ..credentials import resolve_credential, SecretStore
from ..errors import ExecutionError
from ..models import ExecutionResult, ModelTarget, PromptRuntime, ProviderRecord
from .endpoints import resolve_endpoint
from .service import ExecutionRequest, ModelExecutionService

LOGGER = logging.getLogger(__name__)


class ModelExecutionClient:
    """ターゲットを実行要求へ変換し、結果または ``ExecutionError`` を返す。

    再試行・タイムアウト・バックオフは行わない。失敗はすべて
    ``ExecutionError`` として呼び出し元に渡す。
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderRecord],
        secrets: SecretStore,
        service: ModelExecutionService,
    ) -> None:
        self._providers = dict(providers)
        self._secrets = secrets
        self._service = service

    def provider_for(self, target: ModelTarget) -> ProviderRecord:
        record = self._providers.get(target.provider_name)
        if record is None:
            raise ExecutionError(f"provider not found: {target.provider_name}")
        return record

    async def resolve_credential(self, record: ProviderRecord) -> str:
        return await asyncio.to_thread(resolve_credential, record, self._secrets)

    async def execute(
        self,
        target: ModelTarget,
        prompt: PromptRuntime,
        variables: Mapping[str, str],
    ) -> ExecutionResult:
        record = self.provider_for(target)
        credential = await self.resolve_credential(record)
        request = ExecutionRequest(
            target=target,
            prompt=prompt.for_target(target),
            variables=dict(variables),
            credential=credential,
            endpoint=resolve_endpoint(record),
        )
        LOGGER.debug(
            "executing %s via %s (endpoint=%s)",
            target.model_name,
            record.name,
            request.endpoint,
        )
        try:
            return await self._service.execute(request)
        except ExecutionError:
            raise
        except Exception as exc:  # noqa: BLE001 - normalized to ExecutionError
            raise ExecutionError(str(exc) or type(exc).__name__) from exc


__all__ = ["ModelExecutionClient"]
