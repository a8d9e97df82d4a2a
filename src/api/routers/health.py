from __future__ import annotations

import importlib.metadata
import time
from typing import Any

from fastapi import APIRouter, Depends

from src.api.dependencies import get_dataset_store
from src.storage.dataset_store import DatasetStore
from src.storage.sqlite_store import SCHEMA_VERSION


router = APIRouter()


def _pkg_version(name: str) -> str | None:
    try:
        return str(importlib.metadata.version(name))
    except importlib.metadata.PackageNotFoundError:
        return None


@router.get("/healthz")
def healthz(store: DatasetStore = Depends(get_dataset_store)) -> dict[str, str]:
    return {"status": "ok", "backend": store.describe()}


@router.get("/version")
def version() -> dict[str, Any]:
    return {
        "service": "atlas-sync",
        "api": "v1",
        "schema_version": int(SCHEMA_VERSION),
        "deps": {
            "fastapi": _pkg_version("fastapi"),
            "uvicorn": _pkg_version("uvicorn"),
            "pydantic": _pkg_version("pydantic"),
            "boto3": _pkg_version("boto3"),
        },
        "ts": time.time(),
    }
