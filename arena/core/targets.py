"""Selection of model targets for a run."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence

from .errors import EmptySelection, MissingVariable, UnknownTarget
from .models import ModelTarget, PromptRuntime
from .observability import emit_event, EventLogger
from .template import missing_variables

LimitCallback = Callable[[str, int], None]


class TargetSet:
    """Selected targets, bounded by the configured concurrency limit."""

    def __init__(
        self,
        catalog: Sequence[ModelTarget],
        limit: int,
        *,
        logger: EventLogger | None = None,
        on_limit_reached: LimitCallback | None = None,
    ) -> None:
        if limit < 1:
            raise ValueError("selection limit must be >= 1")
        self._catalog: dict[str, ModelTarget] = {target.id: target for target in catalog}
        self._limit = limit
        self._selected: list[str] = []
        self._logger = logger
        self._on_limit_reached = on_limit_reached

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def catalog(self) -> Mapping[str, ModelTarget]:
        return self._catalog

    @property
    def selected(self) -> tuple[str, ...]:
        return tuple(self._selected)

    @property
    def limit_reached(self) -> bool:
        return len(self._selected) >= self._limit

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._selected

    def __len__(self) -> int:
        return len(self._selected)

    def get(self, target_id: str) -> ModelTarget | None:
        return self._catalog.get(target_id)

    def select(self, target_id: str) -> bool:
        """Add ``target_id``; returns ``False`` and signals when the limit is reached."""

        if target_id not in self._catalog:
            raise UnknownTarget(f"unknown model target: {target_id}")
        if target_id in self._selected:
            return True
        if len(self._selected) >= self._limit:
            emit_event(
                self._logger,
                "selection_limit_reached",
                {"target_id": target_id, "limit": self._limit, "selected": list(self._selected)},
            )
            if self._on_limit_reached is not None:
                self._on_limit_reached(target_id, self._limit)
            return False
        self._selected.append(target_id)
        return True

    def deselect(self, target_id: str) -> None:
        if target_id in self._selected:
            self._selected.remove(target_id)

    def toggle(self, target_id: str) -> bool:
        if target_id in self._selected:
            self.deselect(target_id)
            return False
        return self.select(target_id)

    def restore(self, target_ids: Iterable[str]) -> list[str]:
        """Re-select a remembered selection, skipping ids no longer in the catalog."""

        for target_id in target_ids:
            if target_id in self._catalog:
                self.select(target_id)
        return list(self._selected)

    def clear(self) -> None:
        self._selected.clear()

    def validate(
        self, prompt: PromptRuntime, variables: Mapping[str, str]
    ) -> list[ModelTarget]:
        if not self._selected:
            raise EmptySelection()
        missing = missing_variables(prompt.variables(), variables)
        if missing:
            raise MissingVariable(missing)
        return [self._catalog[target_id] for target_id in self._selected]


__all__ = ["TargetSet", "LimitCallback"]
