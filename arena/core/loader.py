"""設定ファイルの読み込みユーティリティ。"""
from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import cast

from pydantic import BaseModel, ValidationError
import yaml

from .errors import ConfigError
from .models import (
    ArenaSettings,
    ModelTarget,
    PromptMessage,
    PromptParameters,
    PromptRuntime,
    ProviderRecord,
)
from .schema import (
    ArenaSettingsModel,
    ModelTargetModel,
    PromptRuntimeModel,
    ProviderRecordModel,
)

__all__ = [
    "load_arena_settings",
    "load_provider_records",
    "load_model_catalog",
    "load_prompt_runtime",
    "parse_arena_settings",
    "parse_prompt_runtime",
]


def _format_validation_error(path: Path | str, exc: ValidationError) -> str:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part is not None)
        message = error.get("msg", "未知のエラー")
        if location:
            details.append(f"{location}: {message}")
        else:
            details.append(message)
    summary = "; ".join(details)
    return f"設定ファイルの検証に失敗しました ({path}): {summary}"


def _load_yaml(path: str | Path) -> object:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"設定ファイルを読み込めません: {path}: {exc}") from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML の解析に失敗しました: {path}: {exc}") from exc


def _load_mapping(path: str | Path) -> MutableMapping[str, object]:
    data = _load_yaml(path)
    if data is None:
        return {}
    if not isinstance(data, MutableMapping):
        raise ConfigError(f"YAML の内容が辞書ではありません: {path}")
    return cast(MutableMapping[str, object], data)


def _load_entries(path: str | Path, key: str) -> list[object]:
    data = _load_yaml(path)
    if isinstance(data, Mapping):
        data = data.get(key, [])
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError(f"YAML の {key} がリストではありません: {path}")
    return data


def _validate(model_cls: type[BaseModel], data: object, source: Path | str) -> BaseModel:
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(source, exc)) from None


def parse_arena_settings(
    data: Mapping[str, object], source: Path | str = "<memory>"
) -> ArenaSettings:
    model = cast(ArenaSettingsModel, _validate(ArenaSettingsModel, dict(data), source))
    return ArenaSettings(**model.model_dump())


def load_arena_settings(path: str | Path | None) -> ArenaSettings:
    """アリーナ設定を読み込む。ファイルが無ければ既定値を返す。"""

    if path is None or not Path(path).exists():
        return ArenaSettings()
    data = _load_mapping(path)
    section = data.get("arena", data)
    if not isinstance(section, Mapping):
        raise ConfigError(f"arena セクションが辞書ではありません: {path}")
    return parse_arena_settings(cast(Mapping[str, object], section), path)


def load_provider_records(path: str | Path) -> dict[str, ProviderRecord]:
    """プロバイダ設定を名前をキーに読み込む。"""

    records: dict[str, ProviderRecord] = {}
    for index, entry in enumerate(_load_entries(path, "providers")):
        model = cast(
            ProviderRecordModel,
            _validate(ProviderRecordModel, entry, f"{path}[{index}]"),
        )
        if model.name in records:
            raise ConfigError(f"プロバイダ名が重複しています: {model.name} ({path})")
        records[model.name] = ProviderRecord(**model.model_dump())
    return records


def load_model_catalog(path: str | Path) -> list[ModelTarget]:
    """有効化済みモデルのカタログを読み込む。"""

    targets: list[ModelTarget] = []
    seen: set[str] = set()
    for index, entry in enumerate(_load_entries(path, "models")):
        model = cast(
            ModelTargetModel,
            _validate(ModelTargetModel, entry, f"{path}[{index}]"),
        )
        target = ModelTarget.build(
            model_id=model.model_id,
            provider_name=model.provider_name,
            provider_type=model.provider_type,
            model_name=model.model_name,
        )
        if model.id is not None and model.id != target.id:
            raise ConfigError(
                f"モデル ID が provider_name + model_id と一致しません: {model.id} ({path})"
            )
        if target.id in seen:
            raise ConfigError(f"モデル ID が重複しています: {target.id} ({path})")
        seen.add(target.id)
        targets.append(target)
    return targets


def parse_prompt_runtime(
    data: Mapping[str, object], source: Path | str = "<memory>"
) -> PromptRuntime:
    model = cast(PromptRuntimeModel, _validate(PromptRuntimeModel, dict(data), source))
    parameters = model.config.parameters
    return PromptRuntime(
        name=model.name,
        description=model.description,
        provider=model.config.provider,
        model=model.config.model,
        messages=tuple(
            PromptMessage(role=message.role, content=message.content)
            for message in model.messages
        ),
        parameters=PromptParameters(**parameters.model_dump())
        if parameters is not None
        else PromptParameters(),
    )


def load_prompt_runtime(path: str | Path) -> PromptRuntime:
    """プロンプトファイルを読み込む。"""

    return parse_prompt_runtime(_load_mapping(path), path)
