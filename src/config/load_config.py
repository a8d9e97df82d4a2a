from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


class ConfigError(RuntimeError):
    pass


_BACKENDS = {"sqlite", "dynamodb", "memory"}
_META_MODES = {"lenient", "strict"}
_LOG_FORMATS = {"json", "text"}


def _as_int(value: Any, *, key: str) -> int:
    try:
        return int(value)
    except Exception as e:
        raise ConfigError(f"Invalid int for {key}: {value!r}") from e


def _as_str(value: Any, *, key: str) -> str:
    if value is None:
        raise ConfigError(f"Missing required config key: {key}")
    return str(value)


def _as_choice(value: Any, *, key: str, choices: set[str]) -> str:
    s = _as_str(value, key=key).strip().lower()
    if s not in choices:
        raise ConfigError(f"Invalid {key}: must be one of {sorted(choices)}, got {s!r}")
    return s


def _env_any(names: list[str]) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value is None or value.strip() == "":
            continue
        return value.strip()
    return None


@dataclass(frozen=True)
class StorageConfig:
    backend: str
    sqlite_path: str
    table_name: str
    region: str
    endpoint_url: str | None


@dataclass(frozen=True)
class ValidationConfig:
    """Structural rules for `meta`.

    `lenient` accepts any object or null. `strict` requires the encrypted-sync
    crypto parameters (enc/kdf/iterations/salt/iv/schemaVersion).
    """

    meta_mode: str
    enc: str
    kdf: str
    min_iterations: int

    @property
    def strict(self) -> bool:
        return self.meta_mode == "strict"


@dataclass(frozen=True)
class APIConfig:
    unmatched_status: int


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    format: str


@dataclass(frozen=True)
class AppConfig:
    storage: StorageConfig
    validation: ValidationConfig
    api: APIConfig
    logging: LoggingConfig


def default_config_path() -> Path:
    return Path(os.getenv("ATLAS_SYNC_CONFIG_PATH", "config/default.toml")).expanduser().resolve()


def _read_toml(path: Path | None) -> dict[str, Any]:
    if path is None:
        cfg_path = default_config_path()
        # The default file is optional: env vars alone are enough to run.
        if not cfg_path.exists() and not os.getenv("ATLAS_SYNC_CONFIG_PATH"):
            return {}
    else:
        cfg_path = path
    if not cfg_path.exists():
        raise ConfigError(f"Config file not found: {cfg_path}")

    try:
        import tomllib  # py3.11+
    except Exception as e:
        raise ConfigError("tomllib is required (Python 3.11+).") from e

    try:
        return tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {cfg_path}: {e}") from e


def load_app_config(path: Path | None = None) -> AppConfig:
    raw = _read_toml(path)

    storage = raw.get("storage", {})
    validation = raw.get("validation", {})
    api = raw.get("api", {})
    logging_ = raw.get("logging", {})

    unmatched_status = _as_int(
        _env_any(["ATLAS_SYNC_UNMATCHED_STATUS"]) or api.get("unmatched_status", 400),
        key="api.unmatched_status",
    )
    if unmatched_status not in {400, 405}:
        raise ConfigError(f"Invalid api.unmatched_status: must be 400 or 405, got {unmatched_status}")

    min_iterations = _as_int(validation.get("min_iterations", 100_000), key="validation.min_iterations")
    if min_iterations < 1:
        raise ConfigError(f"Invalid validation.min_iterations: must be >= 1, got {min_iterations}")

    return AppConfig(
        storage=StorageConfig(
            backend=_as_choice(
                _env_any(["ATLAS_SYNC_BACKEND"]) or storage.get("backend", "sqlite"),
                key="storage.backend",
                choices=_BACKENDS,
            ),
            sqlite_path=_as_str(
                _env_any(["ATLAS_SYNC_SQLITE_PATH"]) or storage.get("sqlite_path", "data/atlas_sync.db"),
                key="storage.sqlite_path",
            ),
            table_name=_as_str(
                _env_any(["ATLAS_SYNC_TABLE_NAME", "TABLE_NAME"])
                or storage.get("table_name", "atlas-sync-datasets"),
                key="storage.table_name",
            ),
            region=_as_str(
                _env_any(["ATLAS_SYNC_REGION", "REGION", "AWS_REGION"]) or storage.get("region", "us-east-1"),
                key="storage.region",
            ),
            endpoint_url=_env_any(["ATLAS_SYNC_DYNAMODB_ENDPOINT"]) or storage.get("endpoint_url") or None,
        ),
        validation=ValidationConfig(
            meta_mode=_as_choice(
                _env_any(["ATLAS_SYNC_META_MODE"]) or validation.get("meta_mode", "lenient"),
                key="validation.meta_mode",
                choices=_META_MODES,
            ),
            enc=_as_str(validation.get("enc", "AES-GCM"), key="validation.enc"),
            kdf=_as_str(validation.get("kdf", "PBKDF2-SHA256"), key="validation.kdf"),
            min_iterations=min_iterations,
        ),
        api=APIConfig(unmatched_status=unmatched_status),
        logging=LoggingConfig(
            level=_as_str(
                _env_any(["ATLAS_SYNC_LOG_LEVEL"]) or logging_.get("level", "INFO"), key="logging.level"
            ).upper(),
            format=_as_choice(
                _env_any(["ATLAS_SYNC_LOG_FORMAT"]) or logging_.get("format", "json"),
                key="logging.format",
                choices=_LOG_FORMATS,
            ),
        ),
    )
