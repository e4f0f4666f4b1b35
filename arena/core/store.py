"""Battle Store collaborators: persisted sessions and their feedback."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import datetime, UTC
import json
import os
from pathlib import Path
import tempfile
from typing import Protocol
import uuid

from .errors import PersistenceError
from .models import BattleOutput, BattleRecord

__all__ = [
    "BattleStore",
    "InMemoryBattleStore",
    "JsonBattleStore",
    "BATTLES_DIRNAME",
]

BATTLES_DIRNAME = Path(".arena") / "battles"


class BattleStore(Protocol):
    async def persist_session(
        self,
        workspace: str,
        prompt_content: str,
        variables: Mapping[str, str],
        target_ids: Sequence[str],
        outputs: Sequence[BattleOutput],
    ) -> str: ...

    async def update_feedback(
        self,
        session_id: str,
        winner: str | None,
        votes: Mapping[str, int],
    ) -> None: ...


def _now_ts() -> int:
    return int(datetime.now(UTC).timestamp())


def _new_record(
    workspace: str,
    prompt_content: str,
    variables: Mapping[str, str],
    target_ids: Sequence[str],
    outputs: Sequence[BattleOutput],
) -> BattleRecord:
    return BattleRecord(
        id=str(uuid.uuid4()),
        workspace=workspace,
        prompt_content=prompt_content,
        input_variables=dict(variables),
        models=list(target_ids),
        outputs=list(outputs),
        timestamp=_now_ts(),
    )


class InMemoryBattleStore:
    """プロセス内にバトルを保持するストア。"""

    def __init__(self) -> None:
        self._records: dict[str, BattleRecord] = {}

    async def persist_session(
        self,
        workspace: str,
        prompt_content: str,
        variables: Mapping[str, str],
        target_ids: Sequence[str],
        outputs: Sequence[BattleOutput],
    ) -> str:
        record = _new_record(workspace, prompt_content, variables, target_ids, outputs)
        self._records[record.id] = record
        return record.id

    async def update_feedback(
        self, session_id: str, winner: str | None, votes: Mapping[str, int]
    ) -> None:
        record = self._records.get(session_id)
        if record is None:
            raise PersistenceError(f"battle not found: {session_id}")
        record.winner_model = winner
        record.votes = dict(votes)

    def get_battle(self, session_id: str) -> BattleRecord | None:
        return self._records.get(session_id)

    def list_battles(self, limit: int | None = None) -> list[BattleRecord]:
        records = sorted(self._records.values(), key=lambda r: r.timestamp, reverse=True)
        return records if limit is None else records[:limit]


class JsonBattleStore:
    """ワークスペース配下に 1 バトル 1 ファイルの JSON として保存するストア。"""

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root) if root is not None else None
        self._paths: dict[str, Path] = {}

    def _battles_dir(self, workspace: str | Path) -> Path:
        base = self._root if self._root is not None else Path(workspace)
        return base / BATTLES_DIRNAME

    def _path_for(self, workspace: str | Path, session_id: str) -> Path:
        return self._battles_dir(workspace) / f"{session_id}.json"

    def _write(self, path: Path, record: BattleRecord) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(record.to_json_dict(), ensure_ascii=False, indent=2)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read(self, path: Path) -> BattleRecord:
        data = json.loads(path.read_text(encoding="utf-8"))
        return BattleRecord.from_json_dict(data)

    def _find(self, session_id: str) -> Path | None:
        if self._root is not None:
            candidate = self._path_for(self._root, session_id)
            return candidate if candidate.exists() else None
        return self._paths.get(session_id)

    async def persist_session(
        self,
        workspace: str,
        prompt_content: str,
        variables: Mapping[str, str],
        target_ids: Sequence[str],
        outputs: Sequence[BattleOutput],
    ) -> str:
        record = _new_record(workspace, prompt_content, variables, target_ids, outputs)
        path = self._path_for(workspace, record.id)
        try:
            await asyncio.to_thread(self._write, path, record)
        except OSError as exc:
            raise PersistenceError(f"failed to save battle to {path}: {exc}") from exc
        self._paths[record.id] = path
        return record.id

    async def update_feedback(
        self, session_id: str, winner: str | None, votes: Mapping[str, int]
    ) -> None:
        path = self._find(session_id)
        if path is None:
            raise PersistenceError(f"battle not found: {session_id}")

        def _update() -> None:
            record = self._read(path)
            record.winner_model = winner
            record.votes = dict(votes)
            self._write(path, record)

        try:
            await asyncio.to_thread(_update)
        except (OSError, ValueError, KeyError) as exc:
            raise PersistenceError(f"failed to update battle {session_id}: {exc}") from exc

    def list_battles(self, workspace: str | Path, limit: int | None = None) -> list[BattleRecord]:
        directory = self._battles_dir(workspace)
        if not directory.exists():
            return []
        records: list[BattleRecord] = []
        for path in directory.glob("*.json"):
            if path.name.startswith(".tmp-"):
                continue
            try:
                records.append(self._read(path))
            except (OSError, ValueError, KeyError) as exc:
                raise PersistenceError(f"failed to read battle {path}: {exc}") from exc
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records if limit is None else records[:limit]

    def get_battle(self, workspace: str | Path, session_id: str) -> BattleRecord | None:
        path = self._path_for(workspace, session_id)
        if not path.exists():
            return None
        return self._read(path)

