"""アリーナで扱う dataclass 定義。"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field, replace
import re
from typing import Any

__all__ = [
    "ModelTarget",
    "ExecutionMetadata",
    "ExecutionResult",
    "ProviderRecord",
    "PromptMessage",
    "PromptParameters",
    "PromptRuntime",
    "ArenaSettings",
    "BattleOutput",
    "BattleRecord",
    "VARIABLE_PATTERN",
]

VARIABLE_PATTERN = re.compile(r"\{\{([a-zA-Z_][a-zA-Z0-9_]*)\}\}")

MAX_CONCURRENT_LIMIT = 10


@dataclass(frozen=True)
class ModelTarget:
    """比較対象となるモデルとプロバイダの組み合わせ。"""

    id: str
    model_id: str
    model_name: str
    provider_name: str
    provider_type: str

    @staticmethod
    def compose_id(provider_name: str, model_id: str) -> str:
        return f"{provider_name}{model_id}"

    @classmethod
    def build(
        cls,
        *,
        model_id: str,
        provider_name: str,
        provider_type: str,
        model_name: str | None = None,
    ) -> ModelTarget:
        return cls(
            id=cls.compose_id(provider_name, model_id),
            model_id=model_id,
            model_name=model_name or model_id,
            provider_name=provider_name,
            provider_type=provider_type,
        )


@dataclass(frozen=True)
class ExecutionMetadata:
    """1 回の実行に付随するメタデータ。"""

    model: str
    provider: str
    latency_ms: int
    tokens_input: int
    tokens_output: int
    cost_usd: float
    timestamp: int


@dataclass(frozen=True)
class ExecutionResult:
    """ターゲットの実行結果。成功時に 1 度だけ生成される。"""

    id: str
    output: str
    metadata: ExecutionMetadata

    def to_json_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProviderRecord:
    """プロバイダ設定。``api_key_source`` で認証情報の取得方法を決める。"""

    name: str
    provider: str
    api_key_source: str = "none"
    api_key_ref: str | None = None
    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None


@dataclass(frozen=True)
class PromptMessage:
    role: str
    content: str


@dataclass(frozen=True)
class PromptParameters:
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None


@dataclass(frozen=True)
class PromptRuntime:
    """実行用に読み込まれたプロンプト。"""

    name: str
    provider: str
    model: str
    messages: tuple[PromptMessage, ...]
    parameters: PromptParameters = field(default_factory=PromptParameters)
    description: str | None = None

    def variables(self) -> list[str]:
        """メッセージ中の ``{{name}}`` を出現順に返す。"""

        names: list[str] = []
        for message in self.messages:
            for match in VARIABLE_PATTERN.finditer(message.content):
                name = match.group(1)
                if name not in names:
                    names.append(name)
        return names

    def for_target(self, target: ModelTarget) -> PromptRuntime:
        return replace(self, model=target.model_id, provider=target.provider_type)

    @property
    def content(self) -> str:
        return "\n\n".join(message.content for message in self.messages)


@dataclass(frozen=True)
class ArenaSettings:
    """アリーナの実行設定。"""

    concurrent_execution: bool = True
    max_concurrent: int = 3
    cost_warning_threshold: float = 0.5
    remember_last_selection: bool = True
    auto_save_results: bool = True
    card_density: str = "normal"

    def __post_init__(self) -> None:
        if not 1 <= self.max_concurrent <= MAX_CONCURRENT_LIMIT:
            raise ValueError(
                f"max_concurrent must be between 1 and {MAX_CONCURRENT_LIMIT}: "
                f"{self.max_concurrent}"
            )


@dataclass(frozen=True)
class BattleOutput:
    """保存されるモデルごとの出力。"""

    model_id: str
    provider_name: str
    model_name: str
    provider_type: str
    output: str
    metadata: ExecutionMetadata

    @classmethod
    def from_result(cls, target: ModelTarget | None, result: ExecutionResult) -> BattleOutput:
        metadata = result.metadata
        if target is None:
            return cls(
                model_id=result.id,
                provider_name=metadata.provider,
                model_name=metadata.model,
                provider_type=metadata.provider,
                output=result.output,
                metadata=metadata,
            )
        return cls(
            model_id=target.id,
            provider_name=target.provider_name,
            model_name=target.model_name,
            provider_type=target.provider_type,
            output=result.output,
            metadata=metadata,
        )

    def to_json_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json_dict(cls, payload: Mapping[str, Any]) -> BattleOutput:
        metadata = ExecutionMetadata(**dict(payload["metadata"]))
        return cls(
            model_id=str(payload["model_id"]),
            provider_name=str(payload["provider_name"]),
            model_name=str(payload["model_name"]),
            provider_type=str(payload["provider_type"]),
            output=str(payload["output"]),
            metadata=metadata,
        )


@dataclass
class BattleRecord:
    """永続化されたバトル 1 件。"""

    id: str
    workspace: str
    prompt_content: str
    input_variables: dict[str, str]
    models: list[str]
    outputs: list[BattleOutput]
    timestamp: int
    winner_model: str | None = None
    votes: dict[str, int] | None = None

    def to_json_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["outputs"] = [output.to_json_dict() for output in self.outputs]
        return payload

    @classmethod
    def from_json_dict(cls, payload: Mapping[str, Any]) -> BattleRecord:
        outputs: Sequence[Mapping[str, Any]] = payload.get("outputs") or []
        votes = payload.get("votes")
        return cls(
            id=str(payload["id"]),
            workspace=str(payload.get("workspace", "")),
            prompt_content=str(payload.get("prompt_content", "")),
            input_variables={
                str(k): str(v) for k, v in dict(payload.get("input_variables") or {}).items()
            },
            models=[str(model) for model in payload.get("models") or []],
            outputs=[BattleOutput.from_json_dict(item) for item in outputs],
            timestamp=int(payload.get("timestamp", 0)),
            winner_model=payload.get("winner_model"),
            votes={str(k): int(v) for k, v in dict(votes).items()} if votes else None,
        )
