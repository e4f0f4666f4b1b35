"""LLM アリーナ: 複数モデルへの同時実行と比較のコアパッケージ。"""

from .core import errors, loader, observability, store  # noqa: F401

__all__ = [
    "errors",
    "loader",
    "observability",
    "store",
]
