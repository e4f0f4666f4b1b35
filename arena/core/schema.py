"""設定ファイル検証用の Pydantic モデル。"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import MAX_CONCURRENT_LIMIT

__all__ = [
    "ArenaSettingsModel",
    "ProviderRecordModel",
    "ModelTargetModel",
    "PromptMessageModel",
    "PromptParametersModel",
    "PromptConfigModel",
    "PromptRuntimeModel",
]


class ArenaSettingsModel(BaseModel):
    """アリーナ設定のスキーマ。"""

    model_config = ConfigDict(extra="forbid")

    concurrent_execution: bool = True
    max_concurrent: int = Field(default=3, ge=1, le=MAX_CONCURRENT_LIMIT)
    cost_warning_threshold: float = Field(default=0.5, ge=0.0)
    remember_last_selection: bool = True
    auto_save_results: bool = True
    card_density: Literal["compact", "normal", "detailed"] = "normal"


class ProviderRecordModel(BaseModel):
    """プロバイダ設定のスキーマ。"""

    model_config = ConfigDict(extra="ignore")

    name: str
    provider: str
    api_key_source: Literal["keychain", "direct", "none"] = "none"
    api_key_ref: str | None = None
    api_key: str | None = None
    base_url: str | None = None

    @field_validator("provider")
    @classmethod
    def _normalize_provider(cls, value: str) -> str:
        return value.strip().lower()


class ModelTargetModel(BaseModel):
    """有効化済みモデルカタログのエントリ。"""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    id: str | None = None
    model_id: str
    model_name: str | None = None
    provider_name: str
    provider_type: str


class PromptMessageModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["system", "user", "assistant"]
    content: str


class PromptParametersModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None


class PromptConfigModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider: str
    model: str
    parameters: PromptParametersModel | None = None


class PromptRuntimeModel(BaseModel):
    """プロンプトファイル全体のスキーマ。"""

    model_config = ConfigDict(extra="ignore")

    name: str
    description: str | None = None
    config: PromptConfigModel
    messages: list[PromptMessageModel] = Field(min_length=1)
