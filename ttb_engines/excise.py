"""
ttb_engines.excise -- CBMA tiered federal excise tax on beer removals.

Responsibility:
    Allocate a period's taxable removals across the tiered CBMA rate bands,
    given the barrels already taxed earlier in the same calendar year, and
    price each band in integer cents.  Also nets taxable removals against
    taxpaid returns and assembles the excise worksheet.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Rate tables are supplied by the caller (ttb_config); nothing here is
    hard-coded because rates change by statute.

Invariants enforced:
    - Bands are filled lowest first: capacity = max(0, ceiling - cursor)
      with the cursor starting at the year-to-date barrels.
    - Conservation: the band quantities sum to the taxable barrels exactly.
    - Money is integer cents; each band is rounded once, and the total is
      the sum of band cents.
    - A year-to-date figure already past a ceiling is not an error: that
      band simply has no capacity left.

Failure modes:
    - ConfigurationError for a malformed rate table.
    - ValueError for negative taxable barrels or year-to-date barrels.

Audit relevance:
    The allocation feeds TTB F 5000.24 and is frozen into the excise
    snapshot when the period is finalized.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ttb_kernel.domain.dtos import TTBPeriodInfo
from ttb_kernel.domain.values import SUPPORTED_ROUNDING, Barrels, cents_for, format_cents
from ttb_kernel.exceptions import ConfigurationError
from ttb_kernel.logging_config import get_logger
from ttb_engines.tracer import traced_engine

logger = get_logger("engines.excise")


# =============================================================================
# Rate table
# =============================================================================


@dataclass(frozen=True)
class RateBandDefinition:
    """
    One tier of the rate table.

    ``ceiling_bbl`` is the cumulative annual barrel count at which the band
    ends (60,000 for the reduced rate); None means unbounded.
    """

    band_id: str
    ceiling_bbl: Barrels | None
    rate_cents_per_bbl: int
    label: str | None = None

    def __post_init__(self) -> None:
        if self.ceiling_bbl is not None:
            object.__setattr__(self, "ceiling_bbl", Barrels.of(self.ceiling_bbl))

    def to_payload(self) -> dict:
        return {
            "band_id": self.band_id,
            "ceiling_bbl": str(self.ceiling_bbl.value) if self.ceiling_bbl is not None else None,
            "rate_cents_per_bbl": self.rate_cents_per_bbl,
        }


@dataclass(frozen=True)
class ExciseRateTable:
    """
    Tiered excise rates in force over a date range.

    Guarantees (checked on construction, ConfigurationError otherwise):
        - At least one band; band ids are unique.
        - Ceilings strictly ascend and are positive.
        - Only the last band is unbounded, and it must be.
        - Rates are non-negative integers (cents per barrel).
        - Rounding is ROUND_HALF_UP or ROUND_HALF_EVEN.
    """

    table_id: str
    effective_from: date
    bands: tuple[RateBandDefinition, ...]
    effective_to: date | None = None
    rounding: str = ROUND_HALF_UP

    def __post_init__(self) -> None:
        object.__setattr__(self, "bands", tuple(self.bands))
        source = f"rate table {self.table_id}"

        if not self.bands:
            raise ConfigurationError("rate table has no bands", source=source)

        seen: set[str] = set()
        previous_ceiling: Barrels | None = None
        for index, band in enumerate(self.bands):
            if band.band_id in seen:
                raise ConfigurationError(f"duplicate band id {band.band_id!r}", source=source)
            seen.add(band.band_id)

            if isinstance(band.rate_cents_per_bbl, bool) or not isinstance(band.rate_cents_per_bbl, int):
                raise ConfigurationError(
                    f"band {band.band_id!r} rate must be integer cents", source=source
                )
            if band.rate_cents_per_bbl < 0:
                raise ConfigurationError(
                    f"band {band.band_id!r} rate cannot be negative", source=source
                )

            is_last = index == len(self.bands) - 1
            if band.ceiling_bbl is None:
                if not is_last:
                    raise ConfigurationError(
                        f"only the last band may be unbounded ({band.band_id!r} is not last)",
                        source=source,
                    )
                continue
            if is_last:
                raise ConfigurationError(
                    f"last band {band.band_id!r} must be unbounded", source=source
                )
            if not band.ceiling_bbl.is_positive:
                raise ConfigurationError(
                    f"band {band.band_id!r} ceiling must be positive", source=source
                )
            if previous_ceiling is not None and band.ceiling_bbl <= previous_ceiling:
                raise ConfigurationError(
                    f"band ceilings must ascend ({band.band_id!r})", source=source
                )
            previous_ceiling = band.ceiling_bbl

        if self.rounding not in SUPPORTED_ROUNDING:
            raise ConfigurationError(
                f"unsupported rounding mode {self.rounding!r}", source=source
            )
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ConfigurationError("effective_to precedes effective_from", source=source)

    def is_effective(self, on_date: date) -> bool:
        if on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to

    @property
    def reduced_rate_ceiling(self) -> Barrels:
        """Ceiling of the lowest band (the annual reduced-rate allowance)."""
        first = self.bands[0]
        return first.ceiling_bbl if first.ceiling_bbl is not None else Barrels.zero()

    def band(self, band_id: str) -> RateBandDefinition:
        for b in self.bands:
            if b.band_id == band_id:
                return b
        raise KeyError(band_id)

    def to_payload(self) -> dict:
        return {
            "table_id": self.table_id,
            "effective_from": self.effective_from.isoformat(),
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
            "rounding": self.rounding,
            "bands": [b.to_payload() for b in self.bands],
        }


# =============================================================================
# Allocation output
# =============================================================================


@dataclass(frozen=True)
class ExciseRateBand:
    """Barrels allocated to one band in one period, and the tax on them."""

    band_id: str
    rate_cents_per_bbl: int
    qty_bbl: Barrels
    tax_cents: int

    def to_payload(self) -> dict:
        return {
            "band_id": self.band_id,
            "rate_cents_per_bbl": self.rate_cents_per_bbl,
            "qty_bbl": str(self.qty_bbl.value),
            "tax_cents": self.tax_cents,
        }

    @classmethod
    def from_payload(cls, data: dict) -> ExciseRateBand:
        return cls(
            band_id=data["band_id"],
            rate_cents_per_bbl=int(data["rate_cents_per_bbl"]),
            qty_bbl=Barrels.of(data["qty_bbl"]),
            tax_cents=int(data["tax_cents"]),
        )


@dataclass(frozen=True)
class ExciseAllocation:
    """Band allocation for one period's taxable barrels."""

    bands: tuple[ExciseRateBand, ...]
    taxable_bbl: Barrels
    ytd_before: Barrels
    ytd_after: Barrels
    total_tax_cents: int

    @property
    def allocated_bbl(self) -> Barrels:
        return sum((b.qty_bbl for b in self.bands), Barrels.zero())

    @property
    def total_tax_display(self) -> str:
        return format_cents(self.total_tax_cents)

    def qty_in(self, band_id: str) -> Barrels:
        """Barrels allocated to ``band_id`` (zero if the band received none)."""
        for b in self.bands:
            if b.band_id == band_id:
                return b.qty_bbl
        return Barrels.zero()

    def to_payload(self) -> dict:
        return {
            "bands": [b.to_payload() for b in self.bands],
            "taxable_bbl": str(self.taxable_bbl.value),
            "ytd_before": str(self.ytd_before.value),
            "ytd_after": str(self.ytd_after.value),
            "total_tax_cents": self.total_tax_cents,
        }

    @classmethod
    def from_payload(cls, data: dict) -> ExciseAllocation:
        return cls(
            bands=tuple(ExciseRateBand.from_payload(b) for b in data["bands"]),
            taxable_bbl=Barrels.of(data["taxable_bbl"]),
            ytd_before=Barrels.of(data["ytd_before"]),
            ytd_after=Barrels.of(data["ytd_after"]),
            total_tax_cents=int(data["total_tax_cents"]),
        )


# =============================================================================
# Calculator
# =============================================================================


class ExciseTaxCalculator:
    """
    Pure CBMA band allocator.

    Contract:
        No I/O, fully deterministic.  The rate table and the year-to-date
        figure are parameters.

    Non-goals:
        - Does NOT apply controlled-group apportionment or carry the
          allowance across ownership changes.
        - Does NOT track the year-to-date counter; callers advance their
          CBMACounter with ``ytd_after``.
    """

    @traced_engine(
        "excise",
        "1.0",
        fingerprint_fields=("taxable_removals_bbl", "ytd_used_bbl", "rate_table"),
    )
    def allocate(
        self,
        taxable_removals_bbl: Barrels | Decimal | str | int,
        ytd_used_bbl: Barrels | Decimal | str | int,
        rate_table: ExciseRateTable,
    ) -> ExciseAllocation:
        """
        Allocate taxable barrels to rate bands, lowest band first.

        Args:
            taxable_removals_bbl: Net taxable barrels removed this period.
            ytd_used_bbl: Taxable barrels already removed earlier this year.
            rate_table: Rates in force for the period.

        Returns:
            ExciseAllocation listing only the bands that received barrels.

        Raises:
            ValueError: If either quantity is negative.
        """
        t0 = time.monotonic()
        taxable = Barrels.of(taxable_removals_bbl)
        ytd = Barrels.of(ytd_used_bbl)

        if taxable.is_negative:
            raise ValueError(f"Taxable removals cannot be negative: {taxable.value}")
        if ytd.is_negative:
            raise ValueError(f"Year-to-date barrels cannot be negative: {ytd.value}")

        logger.info("excise_allocation_started", extra={
            "taxable_bbl": str(taxable.value),
            "ytd_used_bbl": str(ytd.value),
            "table_id": rate_table.table_id,
        })

        bands: list[ExciseRateBand] = []
        cursor = ytd
        remaining = taxable

        for definition in rate_table.bands:
            if not remaining.is_positive:
                break
            if definition.ceiling_bbl is None:
                capacity = remaining
            else:
                capacity = definition.ceiling_bbl - cursor
                if capacity.is_negative:
                    capacity = Barrels.zero()
            take = min(capacity, remaining)
            if not take.is_positive:
                continue
            bands.append(ExciseRateBand(
                band_id=definition.band_id,
                rate_cents_per_bbl=definition.rate_cents_per_bbl,
                qty_bbl=take,
                tax_cents=cents_for(take, definition.rate_cents_per_bbl, rate_table.rounding),
            ))
            cursor = cursor + take
            remaining = remaining - take

        allocation = ExciseAllocation(
            bands=tuple(bands),
            taxable_bbl=taxable,
            ytd_before=ytd,
            ytd_after=ytd + taxable,
            total_tax_cents=sum(b.tax_cents for b in bands),
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("excise_allocation_completed", extra={
            "band_count": len(bands),
            "total_tax_cents": allocation.total_tax_cents,
            "ytd_after": str(allocation.ytd_after.value),
            "duration_ms": duration_ms,
        })

        return allocation


# =============================================================================
# Removals and the worksheet
# =============================================================================


@dataclass(frozen=True)
class Removal:
    """
    One line of the worksheet's removal detail.

    Taxpaid returns are taxable rows with a negative quantity.
    """

    occurred_on: date
    destination: str | None
    quantity_bbl: Barrels
    taxable: bool
    reference: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity_bbl", Barrels.of(self.quantity_bbl))

    @property
    def is_return(self) -> bool:
        return self.quantity_bbl.is_negative

    def to_payload(self) -> dict:
        return {
            "occurred_on": self.occurred_on.isoformat(),
            "destination": self.destination,
            "quantity_bbl": str(self.quantity_bbl.value),
            "taxable": self.taxable,
            "reference": self.reference,
        }


@dataclass(frozen=True)
class NetTaxableRemovals:
    """Taxable removals netted against taxpaid returns."""

    gross_taxable_bbl: Barrels
    returns_bbl: Barrels
    non_taxable_bbl: Barrels
    net_taxable_bbl: Barrels
    excess_returns_bbl: Barrels

    def to_payload(self) -> dict:
        return {
            "gross_taxable_bbl": str(self.gross_taxable_bbl.value),
            "returns_bbl": str(self.returns_bbl.value),
            "non_taxable_bbl": str(self.non_taxable_bbl.value),
            "net_taxable_bbl": str(self.net_taxable_bbl.value),
            "excess_returns_bbl": str(self.excess_returns_bbl.value),
        }


def net_taxable_removals(removals: Iterable[Removal]) -> NetTaxableRemovals:
    """
    Removals minus returns.

    Non-taxable removals (export, transfer in bond, ...) are excluded.
    When returns exceed removals the net is zero and the surplus is
    reported as ``excess_returns_bbl`` so it can be claimed separately.
    """
    gross = Barrels.zero()
    returns = Barrels.zero()
    non_taxable = Barrels.zero()

    for removal in removals:
        if not removal.taxable:
            non_taxable = non_taxable + removal.quantity_bbl
        elif removal.is_return:
            returns = returns + abs(removal.quantity_bbl)
        else:
            gross = gross + removal.quantity_bbl

    net = gross - returns
    excess = Barrels.zero()
    if net.is_negative:
        excess = abs(net)
        net = Barrels.zero()
        logger.warning("excise_excess_returns", extra={
            "gross_taxable_bbl": str(gross.value),
            "returns_bbl": str(returns.value),
            "excess_returns_bbl": str(excess.value),
        })

    return NetTaxableRemovals(
        gross_taxable_bbl=gross,
        returns_bbl=returns,
        non_taxable_bbl=non_taxable,
        net_taxable_bbl=net,
        excess_returns_bbl=excess,
    )


@dataclass(frozen=True)
class ExciseWorksheet:
    """
    Excise worksheet for one period, as consumed by the export pipeline.

    ``ytd_cbma_used_bbl`` and ``cbma_remaining_bbl`` describe the reduced
    rate allowance after this period's allocation.
    """

    period: TTBPeriodInfo
    removals: tuple[Removal, ...]
    net: NetTaxableRemovals
    allocation: ExciseAllocation
    ytd_cbma_used_bbl: Barrels
    cbma_remaining_bbl: Barrels
    rate_table_id: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total_tax_cents(self) -> int:
        return self.allocation.total_tax_cents

    @classmethod
    def build(
        cls,
        period: TTBPeriodInfo,
        removals: Iterable[Removal],
        ytd_used_bbl: Barrels,
        rate_table: ExciseRateTable,
        calculator: ExciseTaxCalculator | None = None,
    ) -> ExciseWorksheet:
        """Net the removals, allocate them and summarize the CBMA allowance."""
        removals = tuple(removals)
        net = net_taxable_removals(removals)
        allocation = (calculator or ExciseTaxCalculator()).allocate(
            net.net_taxable_bbl, ytd_used_bbl, rate_table
        )

        ceiling = rate_table.reduced_rate_ceiling
        used = min(allocation.ytd_after, ceiling)
        remaining = ceiling - used

        warnings = []
        if net.excess_returns_bbl.is_positive:
            warnings.append(
                f"Returns exceed taxable removals by {net.excess_returns_bbl.value} bbl; "
                "claim the excess separately"
            )

        return cls(
            period=period,
            removals=removals,
            net=net,
            allocation=allocation,
            ytd_cbma_used_bbl=used,
            cbma_remaining_bbl=remaining,
            rate_table_id=rate_table.table_id,
            warnings=tuple(warnings),
        )

    def to_payload(self) -> dict:
        return {
            "period": self.period.to_payload(),
            "removals": [r.to_payload() for r in self.removals],
            "net": self.net.to_payload(),
            "allocation": self.allocation.to_payload(),
            "ytd_cbma_used_bbl": str(self.ytd_cbma_used_bbl.value),
            "cbma_remaining_bbl": str(self.cbma_remaining_bbl.value),
            "rate_table_id": self.rate_table_id,
            "warnings": list(self.warnings),
        }
