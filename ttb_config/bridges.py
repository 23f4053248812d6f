"""
Bridges from configuration definitions to engine types.

The engines know nothing about YAML; these helpers turn the frozen
``ttb_config.schema`` definitions into the values the engines accept.
Engine-side validation (band ordering, unbounded last band) happens when
the engine type is constructed.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP

from ttb_config.schema import ExciseRateTableDef
from ttb_engines.excise import ExciseRateTable, RateBandDefinition
from ttb_kernel.exceptions import ConfigurationError

_ROUNDING_MODES = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
}


def rounding_mode(name: str, source: str | None = None) -> str:
    """Map a YAML rounding name to a ``decimal`` rounding constant."""
    try:
        return _ROUNDING_MODES[name]
    except KeyError:
        raise ConfigurationError(
            f"unsupported rounding {name!r} (expected one of {sorted(_ROUNDING_MODES)})",
            source=source,
        ) from None


def build_excise_rate_table(table_def: ExciseRateTableDef) -> ExciseRateTable:
    """Convert an ``ExciseRateTableDef`` into the engine's ``ExciseRateTable``."""
    source = f"rate table {table_def.table_id}"
    return ExciseRateTable(
        table_id=table_def.table_id,
        effective_from=table_def.effective_from,
        effective_to=table_def.effective_to,
        bands=tuple(
            RateBandDefinition(
                band_id=band.band_id,
                ceiling_bbl=band.ceiling_bbl,
                rate_cents_per_bbl=band.rate_cents_per_bbl,
                label=band.label,
            )
            for band in table_def.bands
        ),
        rounding=rounding_mode(table_def.rounding, source=source),
    )
