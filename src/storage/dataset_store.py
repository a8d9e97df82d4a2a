from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, Union


@dataclass(frozen=True)
class DatasetRecord:
    key_id: str
    version: int
    payload: str
    meta: dict[str, Any] | None
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyId": self.key_id,
            "version": int(self.version),
            "payload": self.payload,
            "meta": self.meta,
            "updatedAt": self.updated_at,
        }


# --- Outcomes of a conditional storage call.
# Backends return these instead of raising, so handlers never see
# backend-specific exception types.
@dataclass(frozen=True)
class Ok:
    record: DatasetRecord | None = None


@dataclass(frozen=True)
class NotFound:
    key_id: str


@dataclass(frozen=True)
class AlreadyExists:
    key_id: str


@dataclass(frozen=True)
class BackendError:
    error: BaseException
    operation: str = ""


StoreOutcome = Union[Ok, NotFound, AlreadyExists, BackendError]


class DatasetStore(Protocol):
    """Conditional key-value store for datasets.

    - put_new: insert iff `key_id` does not exist (else AlreadyExists).
    - get: fetch without side effects (NotFound when absent).
    - update_existing: version += 1 and replace payload/meta/updated_at iff
      `key_id` exists; Ok carries the post-update record.
    - delete_existing: remove iff `key_id` exists.
    """

    def put_new(self, record: DatasetRecord) -> StoreOutcome:
        ...

    def get(self, key_id: str) -> StoreOutcome:
        ...

    def update_existing(
        self, key_id: str, *, payload: str, meta: dict[str, Any] | None, updated_at: str
    ) -> StoreOutcome:
        ...

    def delete_existing(self, key_id: str) -> StoreOutcome:
        ...

    def describe(self) -> str:
        ...

    def close(self) -> None:
        ...


def new_key_id() -> str:
    return str(uuid.uuid4())


def utc_iso_now() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-10-18T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
