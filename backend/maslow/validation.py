from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "is_active"},
    required_on_create={"name"},
)

SUITE_POLICY = ModelValidationPolicy(
    writable_fields={
        "suite_number", "is_operational",
        "has_shower", "has_bidet", "has_heated_seat", "has_vanity", "has_changing_table",
        "max_occupancy", "available_samples",
    },
    required_on_create={"suite_number"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans are strict: the capability flags are safety-relevant
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, JSON):
        return value

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_suite(patch: dict) -> None:
    if "max_occupancy" in patch and patch["max_occupancy"] is not None:
        if patch["max_occupancy"] < 1:
            raise ValidationError("max_occupancy must be >= 1")

    samples = patch.get("available_samples")
    if samples is not None:
        if not isinstance(samples, list) or not all(isinstance(s, str) and s for s in samples):
            raise ValidationError("available_samples must be a list of sample ids")
        if len(set(samples)) != len(samples):
            raise ValidationError("available_samples must not contain duplicates")
