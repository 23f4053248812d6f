"""
Compliance configuration (``ttb_config``).

Public API:
    get_active_config()       -- the only way services obtain configuration.
    get_excise_rate_table()   -- rate table in force on a date, as an engine type.

Everything regulatory that changes by statute or by filing arrangement
(excise rates, CBMA ceilings, due-date offsets, reconciliation tolerance)
lives in YAML under ``ttb_config/sets/`` and flows through this module.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

import yaml

from ttb_config.bridges import build_excise_rate_table
from ttb_config.loader import load_yaml_file, parse_compliance_config
from ttb_config.schema import (
    ComplianceConfig,
    ExciseRateTableDef,
    FilingScheduleDef,
    RateBandDef,
)
from ttb_engines.excise import ExciseRateTable
from ttb_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("ttb_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_CONFIG_FILE = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ComplianceConfig:
    """The ONLY public configuration entrypoint.

    Contract:
        Services never read YAML files or environment variables themselves;
        all compliance configuration flows through this function.

    Guarantees:
        - Every rate table in the returned config converts to a valid
          engine ``ExciseRateTable``.
        - A ``TTB_CONFIG_TRACE`` log entry is emitted on every successful
          call.

    Args:
        config_path: Override path to a YAML document.  Defaults to
            ``ttb_config/sets/default.yaml``.

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML, lacks
            a required key, or defines an invalid rate table.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_FILE
    source = str(path)

    try:
        data = load_yaml_file(path)
    except FileNotFoundError as e:
        raise ConfigurationError("configuration file not found", source=source) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML: {e}", source=source) from e

    if not isinstance(data, dict):
        raise ConfigurationError("configuration root must be a mapping", source=source)

    try:
        config = parse_compliance_config(data, source_path=path)
    except KeyError as e:
        raise ConfigurationError(f"missing required key {e.args[0]!r}", source=source) from e
    except (TypeError, ValueError) as e:
        raise ConfigurationError(str(e), source=source) from e

    # Engine-side rate table validation runs at load.
    for table_def in config.rate_tables:
        build_excise_rate_table(table_def)

    _logger.info(
        "TTB_CONFIG_TRACE",
        extra={
            "trace_type": "TTB_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "rate_table_count": len(config.rate_tables),
            "filing_schedule_count": len(config.filing_schedules),
            "source": source,
        },
    )

    return config


def get_excise_rate_table(
    as_of_date: date,
    config: ComplianceConfig | None = None,
) -> ExciseRateTable:
    """
    Rate table in force on ``as_of_date``.

    Raises:
        ConfigurationError: If no table covers the date.
    """
    config = config or get_active_config()
    table_def = config.rate_table_for(as_of_date)
    if table_def is None:
        raise ConfigurationError(
            f"no excise rate table effective on {as_of_date.isoformat()}",
            source=config.source_path,
        )
    return build_excise_rate_table(table_def)


__all__ = [
    "ComplianceConfig",
    "ExciseRateTableDef",
    "FilingScheduleDef",
    "RateBandDef",
    "get_active_config",
    "get_excise_rate_table",
]
