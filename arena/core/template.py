"""``{{name}}`` 形式のプレースホルダ置換。"""

from __future__ import annotations

from collections.abc import Mapping

from .errors import MissingVariable
from .models import PromptRuntime, VARIABLE_PATTERN

__all__ = ["find_variables", "missing_variables", "render", "render_messages"]


def find_variables(text: str) -> list[str]:
    names: list[str] = []
    for match in VARIABLE_PATTERN.finditer(text):
        name = match.group(1)
        if name not in names:
            names.append(name)
    return names


def missing_variables(names: list[str], variables: Mapping[str, str]) -> list[str]:
    """値が未設定または空文字の変数名を返す。"""

    return [name for name in names if not variables.get(name)]


def render(template: str, variables: Mapping[str, str]) -> str:
    missing = [name for name in find_variables(template) if name not in variables]
    if missing:
        raise MissingVariable(missing)
    return VARIABLE_PATTERN.sub(lambda match: str(variables[match.group(1)]), template)


def render_messages(
    prompt: PromptRuntime, variables: Mapping[str, str]
) -> list[dict[str, str]]:
    """全メッセージを OpenAI 形式の辞書に変換する。"""

    missing = [name for name in prompt.variables() if name not in variables]
    if missing:
        raise MissingVariable(missing)
    return [
        {"role": message.role, "content": render(message.content, variables)}
        for message in prompt.messages
    ]
