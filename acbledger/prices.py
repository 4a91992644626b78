"""
ACBLedger Price Store
=====================
In-memory historical price oracle.

Lookup rule: the price of an asset at instant T is the most recent observation
recorded at or before T. A price is never taken from the future, and there is
no nearest-date or monthly-average fallback: if nothing was recorded before T
the lookup fails with ``PriceNotFound`` and the caller decides whether that
transaction really needed the price.
"""

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from acbledger.decimal_utils import ZERO, to_decimal
from acbledger.errors import PriceNotFound
from acbledger.models import ensure_utc


@dataclass(frozen=True)
class Price:
    """One observation: 1 unit of ``asset`` cost ``price`` units of ``reporting`` at ``timestamp``."""
    asset: str
    reporting: str
    timestamp: datetime
    price: Decimal


class PriceStore:
    """
    Prices keyed by (asset, reporting currency), each series kept sorted by
    timestamp so ``latest_price`` is a binary search.

    Recording a second price for the same (asset, reporting, timestamp)
    replaces the first one.
    """

    def __init__(self):
        self._series: Dict[Tuple[str, str], Tuple[List[datetime], List[Decimal]]] = {}

    def __len__(self) -> int:
        return sum(len(times) for times, _ in self._series.values())

    def add_price(self, asset: str, reporting: str, timestamp: datetime, price) -> Price:
        timestamp = ensure_utc(timestamp)
        value = to_decimal(price)
        times, values = self._series.setdefault((asset, reporting), ([], []))
        idx = bisect_left(times, timestamp)
        if idx < len(times) and times[idx] == timestamp:
            values[idx] = value
        else:
            times.insert(idx, timestamp)
            values.insert(idx, value)
        return Price(asset, reporting, timestamp, value)

    def add_prices(self, prices: Iterable[Price]) -> int:
        count = 0
        for p in prices:
            self.add_price(p.asset, p.reporting, p.timestamp, p.price)
            count += 1
        return count

    def latest_price(self, symbol: str, reporting: str, at_or_before: datetime) -> Price:
        """
        Return the latest price at or before ``at_or_before``.

        Raises:
            PriceNotFound: nothing recorded at or before that instant, or
                the latest observation is zero or negative.
        """
        at_or_before = ensure_utc(at_or_before)
        times, values = self._series.get((symbol, reporting), ([], []))
        idx = bisect_right(times, at_or_before) - 1
        if idx < 0 or values[idx] <= ZERO:
            raise PriceNotFound(symbol, reporting, at_or_before)
        return Price(symbol, reporting, times[idx], values[idx])

    def symbols(self) -> List[Tuple[str, str]]:
        return sorted(self._series)
