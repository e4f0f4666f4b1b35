"""コスト計算ユーティリティ。"""

from __future__ import annotations

# USD per 1M tokens (input, output)
_MODEL_PRICES: dict[str, dict[str, tuple[float, float]]] = {
    "openai": {
        "gpt-4o": (2.5, 10.0),
        "gpt-4o-mini": (0.15, 0.60),
        "gpt-4-turbo": (10.0, 30.0),
        "gpt-4": (30.0, 60.0),
        "gpt-3.5-turbo": (0.5, 1.5),
    },
    "anthropic": {
        "claude-3-opus-20240229": (15.0, 75.0),
        "claude-3-sonnet-20240229": (3.0, 15.0),
        "claude-3-haiku-20240307": (0.25, 1.25),
        "claude-3-5-sonnet-20241022": (3.0, 15.0),
    },
}

_FLAT_PROVIDER_PRICES: dict[str, tuple[float, float]] = {
    "deepseek": (0.14, 0.28),
}


def price_per_million(model: str, provider_type: str) -> tuple[float, float]:
    """モデルとプロバイダ種別から 100 万トークンあたりの単価を返す。"""

    provider = provider_type.strip().lower()
    flat = _FLAT_PROVIDER_PRICES.get(provider)
    if flat is not None:
        return flat
    return _MODEL_PRICES.get(provider, {}).get(model, (0.0, 0.0))


def calculate_cost(
    model: str, provider_type: str, input_tokens: int, output_tokens: int
) -> float:
    """トークン数からコスト (USD) を算出する。料金不明のモデルは 0。"""

    input_price, output_price = price_per_million(model, provider_type)
    cost = (input_tokens / 1_000_000.0) * input_price
    cost += (output_tokens / 1_000_000.0) * output_price
    return round(cost, 6)


__all__ = ["calculate_cost", "price_per_million"]
