from __future__ import annotations

import copy
import threading
from dataclasses import replace
from typing import Any

from src.storage.dataset_store import AlreadyExists, DatasetRecord, NotFound, Ok, StoreOutcome


class InMemoryDatasetStore:
    """Process-local store with the same conditional contract as the real backends.

    A single lock makes every check-and-write atomic. Meta objects are deep-copied
    on the way in and out so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, DatasetRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def put_new(self, record: DatasetRecord) -> StoreOutcome:
        with self._lock:
            if record.key_id in self._records:
                return AlreadyExists(key_id=record.key_id)
            stored = replace(record, meta=copy.deepcopy(record.meta))
            self._records[record.key_id] = stored
            return Ok(record=_copy(stored))

    def get(self, key_id: str) -> StoreOutcome:
        with self._lock:
            found = self._records.get(key_id)
            if found is None:
                return NotFound(key_id=key_id)
            return Ok(record=_copy(found))

    def update_existing(
        self, key_id: str, *, payload: str, meta: dict[str, Any] | None, updated_at: str
    ) -> StoreOutcome:
        with self._lock:
            current = self._records.get(key_id)
            if current is None:
                return NotFound(key_id=key_id)
            updated = DatasetRecord(
                key_id=key_id,
                version=int(current.version) + 1,
                payload=payload,
                meta=copy.deepcopy(meta),
                updated_at=updated_at,
            )
            self._records[key_id] = updated
            return Ok(record=_copy(updated))

    def delete_existing(self, key_id: str) -> StoreOutcome:
        with self._lock:
            if self._records.pop(key_id, None) is None:
                return NotFound(key_id=key_id)
            return Ok()

    def describe(self) -> str:
        return "memory"

    def close(self) -> None:
        return None


def _copy(record: DatasetRecord) -> DatasetRecord:
    return replace(record, meta=copy.deepcopy(record.meta))
