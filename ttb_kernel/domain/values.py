"""
Values -- Immutable, self-validating volume and money value objects.

Responsibility:
    Provides the foundational value types for regulatory volume reporting:
    ``Barrels`` (fixed-point decimal beer volume) and integer-cent helpers
    for excise amounts. These replace raw floats wherever a barrel count or
    a tax amount appears in domain logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain and engine module.

Invariants enforced:
    - Barrel quantities are Decimal, never binary floating point. Regulatory
      tolerances are expressed in hundredths of a barrel, so drift from
      float arithmetic is not acceptable.
    - Monetary values are integer cents. Conversion from a fractional cent
      product happens exactly once, through ``cents_for``.

Failure modes:
    - TypeError when a float is passed where a barrel quantity is expected.
    - ValueError on construction from a non-numeric string.
    - ValueError on an unsupported rounding mode.

Audit relevance:
    Barrel totals feed TTB F 5130.9 / 5130.26 and tax amounts feed
    TTB F 5000.24. Reviewers rely on both being computed in exact decimal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, InvalidOperation

# Reporting precision for barrels (two decimal places on TTB forms)
BARREL_PRECISION = Decimal("0.01")

# Rounding tolerance for two-decimal barrel reporting
DEFAULT_TOLERANCE_BBL = Decimal("0.01")

GALLONS_PER_BARREL = Decimal("31")

SUPPORTED_ROUNDING = frozenset({ROUND_HALF_UP, ROUND_HALF_EVEN})


def _to_decimal(value: Decimal | str | int) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("Barrel quantity cannot be a bool")
    if isinstance(value, float):
        raise TypeError(
            "Barrel quantities must not be floats; pass a Decimal or string"
        )
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Invalid barrel quantity: {value}")
        return value
    if isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid barrel quantity: {value!r}") from e
        if not result.is_finite():
            raise ValueError(f"Invalid barrel quantity: {value!r}")
        return result
    raise TypeError(f"Cannot build a barrel quantity from {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class Barrels:
    """
    Beer volume in U.S. barrels (31 gallons).

    Contract:
        Wraps a Decimal. Arithmetic is exact; ``quantize()`` rounds to the
        two-decimal reporting precision when a value is written to a form.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - value is always a finite Decimal (never float)
        - ``sum()`` works over an iterable of Barrels

    Non-goals:
        - Does NOT convert between proof gallons, liters, or case units.
    """

    value: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _to_decimal(self.value))

    @classmethod
    def of(cls, value: Decimal | str | int | Barrels) -> Barrels:
        """Factory accepting Decimal, str, int, or an existing Barrels."""
        if isinstance(value, Barrels):
            return value
        return cls(value=_to_decimal(value))

    @classmethod
    def zero(cls) -> Barrels:
        return cls(value=Decimal("0"))

    @classmethod
    def from_gallons(cls, gallons: Decimal | str | int) -> Barrels:
        """Convert wine gallons to barrels (exact division by 31)."""
        return cls(value=_to_decimal(gallons) / GALLONS_PER_BARREL)

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    @property
    def is_positive(self) -> bool:
        return self.value > 0

    @property
    def is_negative(self) -> bool:
        return self.value < 0

    def quantize(self, rounding: str = ROUND_HALF_UP) -> Barrels:
        """Round to reporting precision (0.01 bbl)."""
        return Barrels(self.value.quantize(BARREL_PRECISION, rounding=rounding))

    def within(self, other: Barrels, tolerance: Decimal = DEFAULT_TOLERANCE_BBL) -> bool:
        """True when |self - other| <= tolerance."""
        return abs(self.value - Barrels.of(other).value) <= tolerance

    def __add__(self, other: Barrels) -> Barrels:
        if not isinstance(other, Barrels):
            return NotImplemented
        return Barrels(self.value + other.value)

    def __radd__(self, other: object) -> Barrels:
        # Supports sum(), which starts from int 0
        if other == 0:
            return self
        if isinstance(other, Barrels):
            return Barrels(other.value + self.value)
        return NotImplemented

    def __sub__(self, other: Barrels) -> Barrels:
        if not isinstance(other, Barrels):
            return NotImplemented
        return Barrels(self.value - other.value)

    def __neg__(self) -> Barrels:
        return Barrels(-self.value)

    def __abs__(self) -> Barrels:
        return Barrels(abs(self.value))

    def __lt__(self, other: Barrels) -> bool:
        if not isinstance(other, Barrels):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other: Barrels) -> bool:
        if not isinstance(other, Barrels):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other: Barrels) -> bool:
        if not isinstance(other, Barrels):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other: Barrels) -> bool:
        if not isinstance(other, Barrels):
            return NotImplemented
        return self.value >= other.value

    def __str__(self) -> str:
        return f"{self.value} bbl"

    def __repr__(self) -> str:
        return f"Barrels({str(self.value)!r})"


def cents_for(
    quantity: Barrels | Decimal,
    rate_cents: int,
    rounding: str = ROUND_HALF_UP,
) -> int:
    """
    Tax in integer cents for ``quantity`` barrels at ``rate_cents`` per barrel.

    The product is computed in exact decimal and rounded to a whole cent
    once, with the given rounding mode.

    Raises:
        ValueError: If the rounding mode is not supported or the rate is negative.
    """
    if rounding not in SUPPORTED_ROUNDING:
        raise ValueError(f"Unsupported rounding mode: {rounding}")
    if rate_cents < 0:
        raise ValueError("Rate cannot be negative")
    qty = quantity.value if isinstance(quantity, Barrels) else _to_decimal(quantity)
    return int((qty * Decimal(rate_cents)).quantize(Decimal("1"), rounding=rounding))


def format_cents(cents: int) -> str:
    """Render integer cents as a dollar string, e.g. 159873 -> '$1,598.73'."""
    sign = "-" if cents < 0 else ""
    dollars, rem = divmod(abs(cents), 100)
    return f"{sign}${dollars:,}.{rem:02d}"
