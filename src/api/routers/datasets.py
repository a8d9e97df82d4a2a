from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from src.api.dependencies import get_app_config, get_dataset_store
from src.api.errors import APIError
from src.api.validation import DatasetBody, MetaValidationError, validate_meta
from src.config.load_config import AppConfig
from src.storage.dataset_store import (
    AlreadyExists,
    BackendError,
    DatasetRecord,
    DatasetStore,
    NotFound,
    Ok,
    StoreOutcome,
    new_key_id,
    utc_iso_now,
)


router = APIRouter()
logger = logging.getLogger(__name__)


def _require_key_id(key_id: str | None) -> str:
    if key_id is None or not key_id.strip():
        raise APIError(status_code=400, code="invalid_argument", message="keyId is required")
    return key_id


def _checked_meta(body: DatasetBody, config: AppConfig) -> dict[str, Any] | None:
    try:
        return validate_meta(body.meta, config.validation)
    except MetaValidationError as e:
        logger.warning("Meta validation failed: %s", e, extra={"status_code": 400})
        raise APIError(
            status_code=400,
            code="invalid_argument",
            message=str(e),
            details={"fields": e.fields},
        ) from e


def _backend_failure(outcome: StoreOutcome, *, operation: str, key_id: str) -> APIError:
    error = outcome.error if isinstance(outcome, BackendError) else None
    logger.error(
        "Storage backend failed during %s",
        operation,
        exc_info=(type(error), error, error.__traceback__) if error is not None else None,
        extra={"operation": operation, "key_id": key_id, "status_code": 500},
    )
    return APIError(status_code=500, code="internal", message="Internal Server Error")


def _not_found(operation: str, key_id: str) -> APIError:
    logger.info("Dataset not found", extra={"operation": operation, "key_id": key_id, "status_code": 404})
    return APIError(status_code=404, code="not_found", message="Dataset not found")


@router.post("/data", status_code=201)
def create_dataset(
    body: DatasetBody,
    store: DatasetStore = Depends(get_dataset_store),
    config: AppConfig = Depends(get_app_config),
) -> dict[str, Any]:
    meta = _checked_meta(body, config)

    record = DatasetRecord(
        key_id=new_key_id(),
        version=1,
        payload=body.payload,
        meta=meta,
        updated_at=utc_iso_now(),
    )
    outcome = store.put_new(record)
    if isinstance(outcome, AlreadyExists):
        logger.info(
            "Dataset key collision on create",
            extra={"operation": "create", "key_id": record.key_id, "status_code": 409},
        )
        raise APIError(status_code=409, code="conflict", message="Dataset already exists")
    if not isinstance(outcome, Ok):
        raise _backend_failure(outcome, operation="create", key_id=record.key_id)

    logger.info("Dataset created", extra={"operation": "create", "key_id": record.key_id})
    return {"keyId": record.key_id, "version": record.version, "updatedAt": record.updated_at}


@router.get("/data/{key_id}")
def get_dataset(key_id: str, store: DatasetStore = Depends(get_dataset_store)) -> dict[str, Any]:
    key_id = _require_key_id(key_id)

    outcome = store.get(key_id)
    if isinstance(outcome, NotFound):
        raise _not_found("read", key_id)
    if not isinstance(outcome, Ok) or outcome.record is None:
        raise _backend_failure(outcome, operation="read", key_id=key_id)
    return outcome.record.to_dict()


@router.put("/data/{key_id}")
def update_dataset(
    key_id: str,
    body: DatasetBody,
    store: DatasetStore = Depends(get_dataset_store),
    config: AppConfig = Depends(get_app_config),
) -> dict[str, Any]:
    key_id = _require_key_id(key_id)
    meta = _checked_meta(body, config)

    outcome = store.update_existing(key_id, payload=body.payload, meta=meta, updated_at=utc_iso_now())
    if isinstance(outcome, NotFound):
        raise _not_found("update", key_id)
    if not isinstance(outcome, Ok) or outcome.record is None:
        raise _backend_failure(outcome, operation="update", key_id=key_id)

    updated = outcome.record
    logger.info("Dataset updated to version %d", updated.version, extra={"operation": "update", "key_id": key_id})
    return {"keyId": updated.key_id, "version": int(updated.version), "updatedAt": updated.updated_at}


@router.delete("/data/{key_id}")
def delete_dataset(key_id: str, store: DatasetStore = Depends(get_dataset_store)) -> dict[str, Any]:
    key_id = _require_key_id(key_id)

    outcome = store.delete_existing(key_id)
    if isinstance(outcome, NotFound):
        raise _not_found("delete", key_id)
    if not isinstance(outcome, Ok):
        raise _backend_failure(outcome, operation="delete", key_id=key_id)

    logger.info("Dataset deleted", extra={"operation": "delete", "key_id": key_id})
    return {"message": "Dataset deleted successfully", "keyId": key_id}


# `/data/` with an empty key segment: report the missing key instead of a routing miss.
@router.get("/data/", include_in_schema=False)
@router.put("/data/", include_in_schema=False)
@router.delete("/data/", include_in_schema=False)
def missing_key_id() -> dict[str, Any]:
    _require_key_id(None)
    return {}
