"""
Aggregator - revenue / GST totals and slab counts over (amount, gst) pairs.

Slabs are the three fixed toll prices 125, 75 and 0. Any other amount still
counts towards revenue, GST and the row total but towards no slab.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

Number = Union[Decimal, int, float, str]

_ZERO = Decimal("0")


class Slab(Enum):
    """Fixed toll price points"""
    SLAB_125 = Decimal("125")
    SLAB_75 = Decimal("75")
    SLAB_0 = Decimal("0")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Fixed-point view of a stored or parsed amount (floats go through str)"""
    if value is None:
        return _ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def classify_slab(amount: Number) -> Optional[Slab]:
    """Exact equality against the slab prices, no tolerance"""
    amount = to_decimal(amount)
    for slab in Slab:
        if amount == slab.value:
            return slab
    return None


@dataclass
class SlabCounts:
    count_125: int = 0
    count_75: int = 0
    count_0: int = 0

    def add(self, slab: Optional[Slab]) -> None:
        if slab is Slab.SLAB_125:
            self.count_125 += 1
        elif slab is Slab.SLAB_75:
            self.count_75 += 1
        elif slab is Slab.SLAB_0:
            self.count_0 += 1

    def to_dict(self) -> dict[str, int]:
        return {"count_125": self.count_125, "count_75": self.count_75, "count_0": self.count_0}


@dataclass
class AggregateTotals:
    """Running totals; ``rows`` includes rows outside every slab"""
    revenue: Decimal = _ZERO
    gst: Decimal = _ZERO
    slabs: SlabCounts = field(default_factory=SlabCounts)
    rows: int = 0

    def add(self, amount: Number, gst: Number) -> None:
        amount = to_decimal(amount)
        self.revenue += amount
        self.gst += to_decimal(gst)
        self.rows += 1
        self.slabs.add(classify_slab(amount))

    def merge(self, other: "AggregateTotals") -> None:
        self.revenue += other.revenue
        self.gst += other.gst
        self.rows += other.rows
        self.slabs.count_125 += other.slabs.count_125
        self.slabs.count_75 += other.slabs.count_75
        self.slabs.count_0 += other.slabs.count_0


def aggregate(pairs: Iterable[tuple[Number, Number]]) -> AggregateTotals:
    """Fold (amount, gst) pairs into totals. Pure; consumes ``pairs`` once."""
    totals = AggregateTotals()
    for amount, gst in pairs:
        totals.add(amount, gst)
    return totals
