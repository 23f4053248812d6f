"""
Configuration Loader (``ttb_config.loader``).

Responsibility
--------------
Loads the compliance YAML document and parses it into typed
``ttb_config.schema`` dataclass instances.  Services never call this
directly; the runtime entry point is ``ttb_config.get_active_config()``.

Invariants enforced
-------------------
* Required keys are never defaulted: a missing key raises ``KeyError``.
* Barrel quantities are parsed as ``Decimal`` from their string form;
  floats in the YAML are rejected.
* ``compute_checksum`` is a deterministic SHA-256 of the parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid dates or quantities  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ttb_config.schema import (
    ComplianceConfig,
    ExciseRateTableDef,
    FilingScheduleDef,
    RateBandDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_quantity(value: Any) -> Decimal:
    """Parse a barrel quantity.  YAML floats are refused."""
    if isinstance(value, (bool, float)):
        raise ValueError(f"Quantity must be quoted or integral, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Cannot parse quantity from {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Cannot parse quantity from {value!r}")
    return result


def parse_rate_band(data: dict[str, Any]) -> RateBandDef:
    ceiling = data["ceiling_bbl"]
    return RateBandDef(
        band_id=data["band_id"],
        ceiling_bbl=parse_quantity(ceiling) if ceiling is not None else None,
        rate_cents_per_bbl=data["rate_cents_per_bbl"],
        label=data.get("label"),
    )


def parse_rate_table(data: dict[str, Any]) -> ExciseRateTableDef:
    """
    Parse an ``ExciseRateTableDef`` from a dict.

    Raises:
        KeyError: if ``table_id``, ``effective_from`` or ``bands`` is missing.
        ValueError: if a date or ceiling cannot be parsed.
    """
    return ExciseRateTableDef(
        table_id=data["table_id"],
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        bands=tuple(parse_rate_band(b) for b in data["bands"]),
        rounding=data.get("rounding", "half_up"),
    )


def parse_filing_schedule(data: dict[str, Any]) -> FilingScheduleDef:
    days = data["due_days_after_end"]
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        raise ValueError(f"due_days_after_end must be a non-negative integer, got {days!r}")
    return FilingScheduleDef(
        report_kind=data["report_kind"],
        period_type=data["period_type"],
        due_days_after_end=days,
    )


def parse_compliance_config(
    data: dict[str, Any],
    source_path: Path | None = None,
) -> ComplianceConfig:
    """Parse the root compliance document."""
    reconciliation = data.get("reconciliation") or {}
    tolerance = parse_quantity(reconciliation.get("tolerance_bbl", "0.01"))
    if tolerance < 0:
        raise ValueError("reconciliation.tolerance_bbl cannot be negative")

    return ComplianceConfig(
        config_id=data["config_id"],
        version=data["version"],
        rate_tables=tuple(parse_rate_table(t) for t in data["excise_rate_tables"]),
        filing_schedules=tuple(
            parse_filing_schedule(s) for s in data.get("filing_schedules", ())
        ),
        reconciliation_tolerance_bbl=tolerance,
        source_path=str(source_path) if source_path is not None else None,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
