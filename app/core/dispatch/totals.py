# app/core/dispatch/totals.py
"""
Derived total computation.

Totals are computed with exact decimal arithmetic and rounded half-up to
two places, so literal fixtures such as ``10 × 18.200 + 5 × 9.100`` give
the same answer on every platform.
"""
from __future__ import annotations

import re
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Mapping

from app.core.dispatch.forms import FormSchema, TotalRule

_ZERO = Decimal("0")
_CENTS = Decimal("0.01")
_KG_PER_MT = Decimal("1000")
_MAX_MAGNITUDE = 100  # digits; larger entries are typos, not quantities

# Leading numeric prefix, like a browser's parseFloat: "12.5kg" → 12.5
_NUMERIC_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_num_or_zero(value: object) -> Decimal:
    """Parse a quantity entry; empty or non-numeric input reads as 0."""
    if value is None:
        return _ZERO
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int) and not isinstance(value, bool):
        number = Decimal(value)
    else:
        text = repr(value) if isinstance(value, float) else str(value)
        match = _NUMERIC_PREFIX.match(text)
        if not match:
            return _ZERO
        try:
            number = Decimal(match.group(1))
        except ArithmeticError:
            # InvalidOperation or Overflow: exponent beyond what Decimal holds
            return _ZERO

    if not number.is_finite() or abs(number.adjusted()) > _MAX_MAGNITUDE:
        return _ZERO
    return number


def round2(value: Decimal) -> str:
    """Format to exactly two decimal places, rounding half-up."""
    with localcontext() as ctx:
        ctx.prec = 400
        ctx.rounding = ROUND_HALF_UP
        return str(value.quantize(_CENTS))


def weighted_total(quantities: Mapping[str, object], weights: Mapping[str, Decimal]) -> str:
    """Σ quantity × unit mass / 1000, over the lines of the weight table."""
    with localcontext() as ctx:
        ctx.prec = 400
        total = sum(
            (parse_num_or_zero(quantities.get(product)) * mass / _KG_PER_MT
             for product, mass in weights.items()),
            _ZERO,
        )
    return round2(total)


def direct_total(quantities: Mapping[str, object], keys: tuple[str, ...]) -> str:
    """Plain sum of mass sub-fields that are already expressed in MT."""
    with localcontext() as ctx:
        ctx.prec = 400
        total = sum((parse_num_or_zero(quantities.get(k)) for k in keys), _ZERO)
    return round2(total)


def compute_total(schema: FormSchema, quantities: Mapping[str, object]) -> str:
    """Derived total for a draft of the given schema."""
    if schema.total_rule is TotalRule.DIRECT_SUM:
        return direct_total(quantities, schema.quantity_keys)
    return weighted_total(quantities, schema.weights)
