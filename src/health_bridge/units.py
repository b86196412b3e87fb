"""Body-mass unit conversion with a fixed two-decimal rounding policy."""

from decimal import ROUND_HALF_UP, Decimal, localcontext

from .types import WeightUnit

# International avoirdupois pound
KG_PER_LB = 0.45359237

SUPPORTED_UNITS: frozenset[str] = frozenset({"kg", "lb"})

_HUNDREDTH = Decimal("0.01")

# Digits needed to quantize the largest finite float (~1.8e308) to hundredths.
_ROUNDING_PRECISION = 400


def round2(value: float) -> float:
    """Round half-up to two decimals on the shortest decimal representation.

    ``round()`` works on the binary value, so ``round(2.675, 2)`` gives 2.67;
    going through ``repr`` keeps 2.675 -> 2.68 as a client would expect.
    """
    with localcontext() as ctx:
        ctx.prec = _ROUNDING_PRECISION
        return float(Decimal(repr(float(value))).quantize(_HUNDREDTH, rounding=ROUND_HALF_UP))


def to_kg(value: float, unit: WeightUnit) -> float:
    """Convert a weight to kilograms, rounded to two decimals.

    Args:
        value: Finite magnitude in ``unit``.
        unit: ``"kg"`` or ``"lb"``.

    Returns:
        Kilograms rounded to two decimals.

    Raises:
        ValueError: If the unit tag is not recognized.
    """
    if unit == "kg":
        return round2(value)
    if unit == "lb":
        return round2(value * KG_PER_LB)
    raise ValueError(f"Unsupported weight unit: {unit!r}")


def to_lb(kg: float) -> float:
    """Convert kilograms to pounds, rounded to two decimals."""
    return round2(kg / KG_PER_LB)
