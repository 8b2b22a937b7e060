# app/core/dispatch/weights.py
"""Unit masses (kg per unit) for every weighted product line."""
from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

# Pack masses taken from prior production data. Several lines share a
# mass because they ship in the same carton (e.g. 5L is packed as 18.2 kg).
OIL_WEIGHTS: Mapping[str, Decimal] = MappingProxyType({
    "20L": Decimal("18.200"),
    "250ML Promo (pc)": Decimal("5.460"),
    "250ML Promo (box)": Decimal("5.460") * 24,  # 24 pieces per box
    "20L SQ.": Decimal("18.200"),
    "10L": Decimal("9.100"),
    "5L": Decimal("18.200"),
    "3L": Decimal("16.380"),
    "1L": Decimal("10.920"),
    "Sunflower 1L": Decimal("11.004"),
    "250ML": Decimal("5.460"),
    "500ML": Decimal("5.460"),
    "500ML Sunflower": Decimal("5.502"),
})

SOAP_WEIGHTS: Mapping[str, Decimal] = MappingProxyType({
    "10X1Kg WHITE": Decimal("10"),
    "20X1Kg WHITE": Decimal("20"),
    "10x1kg W POWER STAR": Decimal("10"),
    "10x1kg W Promotion": Decimal("10"),
    "5x1Kg WHITE": Decimal("5"),
    "5x1kg W Promotion": Decimal("5"),
    "600GM WHITE": Decimal("0.6"),
    "500GM WHITE": Decimal("0.5"),
    "1KG BLUE": Decimal("1"),
    "5x1KG BLUE": Decimal("5"),
    "600GM BLUE": Decimal("0.6"),
    "800 GM BLUE": Decimal("0.8"),
    "500GM BLUE": Decimal("0.5"),
})
