"""
CBMA year-to-date counter.

The reduced small-producer rate applies to the first barrels removed in a
calendar year. The counter is owned by the tax year: it resets every
January 1 and must be the same value for every period inside one year.
It is a value object supplied by the caller; nothing here is global.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ttb_kernel.domain.values import Barrels


@dataclass(frozen=True)
class CBMACounter:
    """
    Cumulative taxable barrels removed in ``tax_year``.

    Guarantees:
        - Immutable; ``after()`` returns a new counter.
        - ``taxable_bbl_ytd`` is never negative.
    """

    tax_year: int
    taxable_bbl_ytd: Barrels = Barrels(Decimal("0"))

    def __post_init__(self) -> None:
        object.__setattr__(self, "taxable_bbl_ytd", Barrels.of(self.taxable_bbl_ytd))
        if self.taxable_bbl_ytd.is_negative:
            raise ValueError("CBMA year-to-date barrels cannot be negative")

    @classmethod
    def start_of_year(cls, tax_year: int) -> CBMACounter:
        return cls(tax_year=tax_year, taxable_bbl_ytd=Barrels.zero())

    def for_date(self, on_date: date) -> CBMACounter:
        """This counter if ``on_date`` is in the same year, else a fresh one."""
        if on_date.year == self.tax_year:
            return self
        if on_date.year < self.tax_year:
            raise ValueError(
                f"Cannot roll CBMA counter for {self.tax_year} back to {on_date.year}"
            )
        return CBMACounter.start_of_year(on_date.year)

    def after(self, taxable_bbl: Barrels | Decimal | str | int) -> CBMACounter:
        """Counter advanced by barrels taxed in a period of the same year."""
        added = Barrels.of(taxable_bbl)
        if added.is_negative:
            raise ValueError("Cannot advance CBMA counter by a negative amount")
        return CBMACounter(tax_year=self.tax_year, taxable_bbl_ytd=self.taxable_bbl_ytd + added)

    def reduced_rate_used(self, reduced_ceiling_bbl: Barrels) -> Barrels:
        return min(self.taxable_bbl_ytd, Barrels.of(reduced_ceiling_bbl))

    def reduced_rate_remaining(self, reduced_ceiling_bbl: Barrels) -> Barrels:
        remaining = Barrels.of(reduced_ceiling_bbl) - self.taxable_bbl_ytd
        return remaining if remaining.is_positive else Barrels.zero()
