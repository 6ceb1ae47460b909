"""Resumable progress state for sync jobs.

State is saved after every page and every record. Two backends share the
same load/save interface:

- FileProgressStore: JSON file under SYNC_PROGRESS_DIR, atomic tmp+replace.
- StoreProgressStore: one ``sync_progress`` row per job name.

Both fall back to a fresh state when the saved copy is missing or corrupt.
Only one process per job may write a given progress location.
"""

import asyncio
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from scoreline.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


@dataclass
class ProgressState:
    current_page: int = 0
    current_date: Optional[str] = None
    total_pages: int = 0
    processed: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    processed_ids: set = field(default_factory=set)
    start_time: str = field(default_factory=_utc_now_iso)
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["processed_ids"] = sorted(self.processed_ids)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ProgressState":
        if not isinstance(data, dict):
            raise ValueError("progress payload must be an object")
        state = cls()
        state.current_page = int(data.get("current_page") or 0)
        state.current_date = data.get("current_date")
        state.total_pages = int(data.get("total_pages") or 0)
        state.processed = int(data.get("processed") or 0)
        state.created = int(data.get("created") or 0)
        state.skipped = int(data.get("skipped") or 0)
        state.failed = int(data.get("failed") or 0)
        state.processed_ids = set(data.get("processed_ids") or [])
        state.start_time = data.get("start_time") or _utc_now_iso()
        state.extra = dict(data.get("extra") or {})
        return state

    def record(self, record_id: Any, action: str) -> None:
        """Count one processed record. action: created, skipped, failed."""
        self.processed += 1
        if action == "created":
            self.created += 1
        elif action == "failed":
            self.failed += 1
        else:
            self.skipped += 1
        if record_id is not None and action != "failed":
            self.processed_ids.add(record_id)

    def is_processed(self, record_id: Any) -> bool:
        return record_id in self.processed_ids


class FileProgressStore:
    """Persist ProgressState to {SYNC_PROGRESS_DIR}/{job}.json."""

    def __init__(self, job: str, base_dir: Optional[str] = None):
        self.job = job
        self.base_dir = base_dir or settings.SYNC_PROGRESS_DIR
        self.path = os.path.join(self.base_dir, f"{job}.json")

    def _read(self) -> Optional[dict]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: dict) -> None:
        os.makedirs(self.base_dir, exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self.path)

    async def load(self) -> ProgressState:
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._read)
            if data is None:
                return ProgressState()
            state = ProgressState.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("[PROGRESS] Unreadable progress file %s (%s), starting fresh", self.path, e)
            return ProgressState()
        logger.info(
            "[PROGRESS] Loaded %s: date=%s page=%d processed=%d",
            self.path, state.current_date, state.current_page, state.processed,
        )
        return state

    async def save(self, state: ProgressState) -> None:
        # Off the event loop, called after every record.
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, state.to_dict())

    async def reset(self) -> ProgressState:
        state = ProgressState()
        await self.save(state)
        return state


class StoreProgressStore:
    """Persist ProgressState in the ``sync_progress`` collection."""

    def __init__(self, job: str, store):
        self.job = job
        self.store = store
        self._row_id: Optional[int] = None

    async def load(self) -> ProgressState:
        row = await self.store.find_one("sync_progress", where={"job": {"equals": self.job}})
        if row is None:
            return ProgressState()
        self._row_id = row["id"]
        try:
            return ProgressState.from_dict(row.get("state"))
        except (ValueError, TypeError) as e:
            logger.warning("[PROGRESS] Corrupt progress row for %s (%s), starting fresh", self.job, e)
            return ProgressState()

    async def save(self, state: ProgressState) -> None:
        data = {"job": self.job, "state": state.to_dict(), "updated_at": datetime.now(timezone.utc).replace(tzinfo=None)}
        if self._row_id is None:
            row = await self.store.find_one("sync_progress", where={"job": {"equals": self.job}})
            if row is None:
                row = await self.store.create("sync_progress", data)
                self._row_id = row["id"]
                return
            self._row_id = row["id"]
        await self.store.update("sync_progress", self._row_id, data)

    async def reset(self) -> ProgressState:
        state = ProgressState()
        await self.save(state)
        return state
