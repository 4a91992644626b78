"""
ACBLedger Decimal Helpers
=========================
Every monetary and quantity value in the ledger is a ``Decimal``.

Crypto quantities routinely carry 8-18 fractional digits and a wallet history
can span thousands of transactions. Binary floats drift over that many
additions, and the ACB engine has hard invariants (basis never negative,
yearly buckets summing exactly to the lifetime totals) that drift would break.
"""

import math
from decimal import Decimal, Context, InvalidOperation, ROUND_HALF_EVEN, ROUND_HALF_UP
from typing import Any, Optional


ZERO = Decimal('0')

# Reporting-currency precision (cents), used for display and exports only
MONEY_PRECISION = Decimal('0.01')

# Working precision for a single ACB walk
ENGINE_PRECISION = 50

# Fixed-point step for computed amounts (FMV products, proportional costs)
QUANTUM = Decimal('1e-18')


def engine_context() -> Context:
    """
    Decimal context used for the whole ACB walk.

    With computed amounts held to 18 decimal places, 50 significant digits
    makes every addition of the walk exact, so adding the same deltas into a
    year bucket and into the lifetime totals gives identical results.
    """
    return Context(prec=ENGINE_PRECISION, rounding=ROUND_HALF_EVEN)


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Decimal:
    """
    Coerce a raw value (int, str, float, Decimal) into a Decimal.

    Floats are converted via ``str()`` so ``0.1`` becomes ``Decimal('0.1')``
    rather than its binary expansion. ``None``, blank strings and NaN return
    ``default``; with no default they raise ``InvalidOperation``, as does any
    unparsable string.

    Examples:
        >>> to_decimal('45000.123')
        Decimal('45000.123')
        >>> to_decimal(1.5)
        Decimal('1.5')
        >>> to_decimal(None, ZERO)
        Decimal('0')
    """
    if isinstance(value, Decimal):
        if value.is_nan():
            return _missing(value, default)
        return value
    if value is None:
        return _missing(value, default)
    if isinstance(value, bool):
        raise InvalidOperation(f"Cannot convert boolean {value!r} to Decimal")
    if isinstance(value, float):
        if math.isnan(value):
            return _missing(value, default)
        value = str(value)
    text = str(value).strip().replace(',', '')
    if not text or text.lower() in ('nan', 'none'):
        return _missing(value, default)
    try:
        result = Decimal(text)
    except InvalidOperation:
        if default is not None:
            return default
        raise InvalidOperation(f"Cannot convert {value!r} to Decimal")
    if not result.is_finite():
        raise InvalidOperation(f"Cannot convert {value!r} to a finite Decimal")
    return result


def to_fixed(value: Decimal) -> Decimal:
    """
    Round a computed amount to at most 18 decimal places (ROUND_HALF_EVEN).
    Values already that coarse are returned unchanged.
    """
    if value.as_tuple().exponent >= QUANTUM.as_tuple().exponent:
        return value
    return value.quantize(QUANTUM, rounding=ROUND_HALF_EVEN)


def _missing(value: Any, default: Optional[Decimal]) -> Decimal:
    if default is None:
        raise InvalidOperation(f"Missing numeric value: {value!r}")
    return default


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents (ROUND_HALF_UP) for display and export only."""
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)
