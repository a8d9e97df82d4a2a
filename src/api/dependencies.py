from __future__ import annotations

import threading

from fastapi import Request

from src.config.load_config import AppConfig, load_app_config
from src.storage.dataset_store import DatasetStore
from src.storage.factory import build_store


_STORE_INIT_LOCK = threading.Lock()


def get_app_config(request: Request) -> AppConfig:
    cached = getattr(request.app.state, "config", None)
    if isinstance(cached, AppConfig):
        return cached
    cfg = load_app_config()
    request.app.state.config = cfg
    return cfg


def get_dataset_store(request: Request) -> DatasetStore:
    """FastAPI dependency: returns the app's DatasetStore (lazy init).

    An injected store (create_app(store=...)) is used as-is. Otherwise the
    configured backend is built once and cached in `app.state` for the
    lifetime of the process; the app then owns it and closes it on shutdown.
    """
    cached = getattr(request.app.state, "dataset_store", None)
    if cached is not None:
        return cached

    with _STORE_INIT_LOCK:
        cached2 = getattr(request.app.state, "dataset_store", None)
        if cached2 is not None:
            return cached2

        store = build_store(get_app_config(request))
        request.app.state.dataset_store = store
        request.app.state.owns_dataset_store = True
        return store
