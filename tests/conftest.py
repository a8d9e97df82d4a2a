from __future__ import annotations

import sys
from pathlib import Path

import pytest


# Ensure `import src...` works when running `pytest` from repo root.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


_CONFIG_ENV_VARS = (
    "ATLAS_SYNC_CONFIG_PATH",
    "ATLAS_SYNC_BACKEND",
    "ATLAS_SYNC_SQLITE_PATH",
    "ATLAS_SYNC_TABLE_NAME",
    "ATLAS_SYNC_REGION",
    "ATLAS_SYNC_DYNAMODB_ENDPOINT",
    "ATLAS_SYNC_META_MODE",
    "ATLAS_SYNC_UNMATCHED_STATUS",
    "ATLAS_SYNC_LOG_LEVEL",
    "ATLAS_SYNC_LOG_FORMAT",
    "TABLE_NAME",
    "REGION",
    "AWS_REGION",
)


@pytest.fixture
def clean_config_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run with no config file and no config env vars; returns the (empty) cwd."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
