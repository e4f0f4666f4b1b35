"""保存済みバトルの集計。"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import BattleRecord


@dataclass
class ArenaStatistics:
    total_battles: int = 0
    unique_models_count: int = 0
    total_model_appearances: int = 0
    model_votes: dict[str, int] = field(default_factory=dict)
    model_wins: dict[str, int] = field(default_factory=dict)
    model_tokens: dict[str, tuple[int, int]] = field(default_factory=dict)
    model_avg_latency: dict[str, float] = field(default_factory=dict)
    model_cost: dict[str, float] = field(default_factory=dict)
    provider_tokens: dict[str, tuple[int, int]] = field(default_factory=dict)
    provider_avg_latency: dict[str, float] = field(default_factory=dict)
    provider_cost: dict[str, float] = field(default_factory=dict)

    def ranked_by_votes(self) -> list[tuple[str, int]]:
        return sorted(self.model_votes.items(), key=lambda item: (-item[1], item[0]))

    def ranked_by_wins(self) -> list[tuple[str, int]]:
        return sorted(self.model_wins.items(), key=lambda item: (-item[1], item[0]))


class _Accumulator:
    def __init__(self) -> None:
        self.tokens_in: dict[str, int] = {}
        self.tokens_out: dict[str, int] = {}
        self.latency_total: dict[str, int] = {}
        self.count: dict[str, int] = {}
        self.cost: dict[str, float] = {}

    def add(self, key: str, tokens_in: int, tokens_out: int, latency_ms: int, cost: float) -> None:
        self.tokens_in[key] = self.tokens_in.get(key, 0) + tokens_in
        self.tokens_out[key] = self.tokens_out.get(key, 0) + tokens_out
        self.latency_total[key] = self.latency_total.get(key, 0) + latency_ms
        self.count[key] = self.count.get(key, 0) + 1
        self.cost[key] = self.cost.get(key, 0.0) + cost

    def tokens(self) -> dict[str, tuple[int, int]]:
        return {key: (self.tokens_in[key], self.tokens_out[key]) for key in self.count}

    def avg_latency(self) -> dict[str, float]:
        return {key: self.latency_total[key] / self.count[key] for key in self.count}

    def rounded_cost(self) -> dict[str, float]:
        return {key: round(value, 6) for key, value in self.cost.items()}


def compute_statistics(battles: Iterable[BattleRecord]) -> ArenaStatistics:
    """投票数・勝利数・トークン・レイテンシ・コストをモデル／プロバイダ単位で集計する。

    投票と勝者は保存時と同じ表示名 (``model_name``) をキーにする。
    """

    stats = ArenaStatistics()
    models = _Accumulator()
    providers = _Accumulator()
    unique_models: set[str] = set()
    for battle in battles:
        stats.total_battles += 1
        for output in battle.outputs:
            metadata = output.metadata
            stats.total_model_appearances += 1
            unique_models.add(output.model_name)
            models.add(
                output.model_name,
                metadata.tokens_input,
                metadata.tokens_output,
                metadata.latency_ms,
                metadata.cost_usd,
            )
            providers.add(
                output.provider_name,
                metadata.tokens_input,
                metadata.tokens_output,
                metadata.latency_ms,
                metadata.cost_usd,
            )
        for name, count in (battle.votes or {}).items():
            stats.model_votes[name] = stats.model_votes.get(name, 0) + int(count)
        if battle.winner_model:
            stats.model_wins[battle.winner_model] = (
                stats.model_wins.get(battle.winner_model, 0) + 1
            )
    stats.unique_models_count = len(unique_models)
    stats.model_tokens = models.tokens()
    stats.model_avg_latency = models.avg_latency()
    stats.model_cost = models.rounded_cost()
    stats.provider_tokens = providers.tokens()
    stats.provider_avg_latency = providers.avg_latency()
    stats.provider_cost = providers.rounded_cost()
    return stats


__all__ = ["ArenaStatistics", "compute_statistics"]
