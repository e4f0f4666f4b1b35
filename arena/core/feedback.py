"""Vote and winner transitions, pushed to the Battle Store once a session is saved."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging

from .errors import VoteNotAllowed
from .models import ModelTarget
from .observability import emit_event, EventLogger
from .session_state import SessionState
from .store import BattleStore

LOGGER = logging.getLogger(__name__)


class FeedbackController:
    """State machine over ``(votes, winner)``.

    Transitions made before the session has a persisted id stay local and are
    not replayed when persistence happens later. Pushes are serialized and each
    one sends the state as of when it acquires the lock.
    """

    def __init__(
        self,
        state: SessionState,
        targets: Mapping[str, ModelTarget],
        *,
        store: BattleStore | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self._state = state
        self._targets = targets
        self._store = store
        self._logger = logger
        self._push_lock = asyncio.Lock()

    def _require_result(self, target_id: str) -> None:
        if target_id not in self._state.results:
            raise VoteNotAllowed(f"no result to vote on for {target_id}")

    def display_name(self, target_id: str) -> str:
        target = self._targets.get(target_id)
        return target.model_name if target is not None else target_id

    def votes_by_display_name(self) -> dict[str, int]:
        return {self.display_name(target_id): 1 for target_id in sorted(self._state.votes)}

    async def toggle_vote(self, target_id: str) -> bool:
        """Flip ``target_id`` in the votes set; returns the new membership."""

        self._require_result(target_id)
        votes = set(self._state.votes)
        if target_id in votes:
            votes.discard(target_id)
        else:
            votes.add(target_id)
        self._state.set_votes(votes)
        await self._push()
        return target_id in votes

    async def toggle_winner(self, target_id: str) -> str | None:
        """Set ``target_id`` as winner, or clear it when it already is."""

        self._require_result(target_id)
        winner = None if self._state.winner == target_id else target_id
        self._state.set_winner(winner)
        await self._push()
        return winner

    async def _push(self) -> bool:
        async with self._push_lock:
            return await self._push_current()

    async def _push_current(self) -> bool:
        session_id = self._state.persisted_session_id
        if session_id is None or self._store is None:
            return False
        winner = self._state.winner
        winner_name = self.display_name(winner) if winner is not None else None
        votes = self.votes_by_display_name()
        try:
            await self._store.update_feedback(session_id, winner_name, votes)
        except Exception as exc:  # noqa: BLE001 - feedback sync is non-fatal
            LOGGER.warning("failed to update votes for %s: %s", session_id, exc)
            emit_event(
                self._logger,
                "feedback_failed",
                {
                    "session_id": session_id,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return False
        emit_event(
            self._logger,
            "feedback_pushed",
            {"session_id": session_id, "winner": winner_name, "votes": votes},
        )
        return True


__all__ = ["FeedbackController"]
