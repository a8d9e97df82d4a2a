from __future__ import annotations

import math
from typing import Any, Iterable

from pydantic import BaseModel, Field, StrictStr, ValidationError, ValidationInfo, field_validator

from src.config.load_config import ValidationConfig


def _all_finite(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, dict):
        return all(_all_finite(v) for v in value.values())
    if isinstance(value, list):
        return all(_all_finite(v) for v in value)
    return True


class DatasetBody(BaseModel):
    """Request body for create and update. `payload` is opaque and never parsed."""

    payload: StrictStr = Field(min_length=1)
    meta: dict[str, Any] | None = Field(default=None)

    @field_validator("meta")
    @classmethod
    def _finite_numbers(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        # NaN and Infinity parse from the request but have no JSON form to store.
        if v is not None and not _all_finite(v):
            raise ValueError("numbers must be finite (NaN and Infinity are not allowed)")
        return v


class CryptoMeta(BaseModel):
    """Encrypted-sync crypto parameters (strict mode only).

    Expected values come in through the validation context so they stay
    configurable: {"enc": ..., "kdf": ..., "min_iterations": ...}.
    """

    enc: StrictStr
    kdf: StrictStr
    iterations: Any
    salt: StrictStr = Field(min_length=1)
    iv: StrictStr = Field(min_length=1)
    schemaVersion: Any

    @field_validator("enc", "kdf")
    @classmethod
    def _expected_name(cls, v: str, info: ValidationInfo) -> str:
        expected = (info.context or {}).get(info.field_name)
        if expected is not None and v != expected:
            raise ValueError(f'must be "{expected}"')
        return v

    @field_validator("iterations", "schemaVersion")
    @classmethod
    def _number(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            raise ValueError("must be a number")
        if info.field_name == "schemaVersion" and v < 1:
            raise ValueError("must be a number >= 1")
        minimum = (info.context or {}).get("min_iterations")
        if info.field_name == "iterations" and minimum is not None and v < minimum:
            raise ValueError(f"must be a number >= {minimum}")
        return v


def _clean_msg(msg: str) -> str:
    # Pydantic prefixes custom validator messages with "Value error, ".
    prefix = "Value error, "
    return msg[len(prefix):] if msg.startswith(prefix) else msg


def describe_errors(errors: Iterable[dict[str, Any]], *, strip_prefix: str | None = None) -> tuple[str, list[str]]:
    """Render pydantic error dicts as ("field: reason; ...", [field, ...])."""
    parts: list[str] = []
    fields: list[str] = []
    for err in errors:
        loc = [str(p) for p in (err.get("loc") or ())]
        if strip_prefix and loc and loc[0] == strip_prefix:
            loc = loc[1:]
        if err.get("type") == "json_invalid":
            field, msg = "body", "must be valid JSON"
        elif err.get("type") == "missing" and not loc and strip_prefix == "body":
            # No body at all: the first required field is what is missing.
            field, msg = "payload", "Field required"
        else:
            field = ".".join(loc) or (strip_prefix or "body")
            msg = _clean_msg(str(err.get("msg") or "is invalid"))
        if field not in fields:
            fields.append(field)
        parts.append(f"{field}: {msg}")
    return "; ".join(parts) or "Request validation failed.", fields


class MetaValidationError(ValueError):
    def __init__(self, message: str, *, fields: list[str]) -> None:
        super().__init__(message)
        self.fields = fields


def validate_meta(meta: dict[str, Any] | None, policy: ValidationConfig) -> dict[str, Any] | None:
    """Apply the configured meta policy. Returns meta unchanged when it passes."""
    if not policy.strict:
        return meta
    if meta is None:
        raise MetaValidationError("meta: is required and must be an object", fields=["meta"])
    try:
        CryptoMeta.model_validate(
            meta,
            context={"enc": policy.enc, "kdf": policy.kdf, "min_iterations": policy.min_iterations},
        )
    except ValidationError as e:
        errors = [{**err, "loc": ("meta", *err.get("loc", ()))} for err in e.errors()]
        message, fields = describe_errors(errors)
        raise MetaValidationError(message, fields=fields) from e
    return meta
