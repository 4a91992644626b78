"""
ACBLedger ACB Engine
====================
Implements the Adjusted Cost Base (ACB) method for Canadian tax calculations,
for any crypto asset tracked in the ledger.

The principle: all units of an asset form one pool with a single running cost
base. Acquisitions add their full cost (plus fees) to the pool. Dispositions
remove a share of the pool proportional to the units disposed:

    cost removed = (units disposed / units held) × cost base
    gain (loss)  = proceeds - cost removed - outlays

The per-unit ACB is unchanged by a disposition; only the total cost base and
the units held shrink.

Superficial Loss Rule
---------------------
A loss is denied if identical property was acquired in the 30 days before or
after the disposition. The denied amount is not lost: it is added back to the
cost base of the pool, so it is recovered when the replacement units are
eventually sold.

Valuation
---------
All amounts are expressed in the single reporting currency. When a leg of a
transaction is in another asset, its fair market value comes from the price
store: the latest price at or before the transaction's timestamp.
Fair market values and proportional costs are kept to 18 decimal places;
nothing else is rounded.

The engine recomputes everything from scratch on every call. Nothing is kept
between calls, so two runs over the same ledger and prices give identical
reports, and different assets can be calculated concurrently.
"""

import json
import logging
import pandas as pd
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from decimal import Decimal, localcontext
from typing import Any, Dict, List, Optional

from acbledger.config import resolve_timezone
from acbledger.decimal_utils import ZERO, engine_context, quantize_money, to_fixed
from acbledger.errors import (
    ConsistencyError,
    DepletedHoldingsError,
    PriceNotFound,
    UnresolvablePriceError,
    UnsupportedAssetError,
)
from acbledger.ledger import TransactionLedger
from acbledger.logging_utils import log_event, logger
from acbledger.models import ACQUISITION_TYPES, DISPOSAL_TYPES, Transaction, TransactionType
from acbledger.prices import PriceStore

SUPERFICIAL_LOSS_WINDOW = timedelta(days=30)

# CRA capital gains inclusion rate
INCLUSION_RATE = Decimal('0.50')

TOTALS_KEY = 'TOTALS'


def is_superficial_loss(tx: Transaction, txs: List[Transaction], index: int, asset: str) -> bool:
    """
    Decide whether a loss realized by ``txs[index]`` is a superficial loss.

    True if ``asset`` was acquired (Buy, Receive or Trade into it, positive
    quantity) by another transaction dated within 30 days before or after
    ``tx``. Transactions sharing ``tx``'s exact timestamp do not count.

    ``txs`` must be sorted ascending by timestamp: each scan stops at the first
    transaction outside the window.
    """
    window_end = tx.timestamp + SUPERFICIAL_LOSS_WINDOW
    window_start = tx.timestamp - SUPERFICIAL_LOSS_WINDOW

    for later in txs[index + 1:]:
        if later.timestamp > window_end:
            break
        if later.timestamp > tx.timestamp and _acquires(later, asset):
            return True

    for earlier in reversed(txs[:index]):
        if earlier.timestamp < window_start:
            break
        if earlier.timestamp < tx.timestamp and _acquires(earlier, asset):
            return True

    return False


def _acquires(tx: Transaction, asset: str) -> bool:
    return (
        tx.kind in ACQUISITION_TYPES
        and tx.receive_asset == asset
        and tx.receive_quantity is not None
        and tx.receive_quantity > ZERO
    )


@dataclass
class YearBucket:
    """
    Changes over one calendar year (or, for TOTALS, over the whole history).

    ``basis`` and ``units`` are the net change in cost base and units held;
    the other fields are realized amounts.
    """
    basis: Decimal = ZERO
    units: Decimal = ZERO
    proceeds: Decimal = ZERO
    costs: Decimal = ZERO
    outlays: Decimal = ZERO
    gain_loss: Decimal = ZERO
    superficial_losses: Decimal = ZERO
    income: Decimal = ZERO

    def as_dict(self) -> Dict[str, str]:
        return {f.name: str(getattr(self, f.name)) for f in fields(self)}

    def __add__(self, other: 'YearBucket') -> 'YearBucket':
        return YearBucket(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })


BUCKET_FIELDS = tuple(f.name for f in fields(YearBucket))


@dataclass
class AcbState:
    """Running cost base and units held of the asset being calculated."""
    basis: Decimal = ZERO
    units: Decimal = ZERO


@dataclass(frozen=True)
class Disposition:
    """One realized disposition, as reported on CRA Schedule 3."""
    tx_id: Any
    timestamp: datetime
    year: str
    kind: TransactionType
    units: Decimal
    proceeds: Decimal
    cost: Decimal
    outlay: Decimal
    gain_loss: Decimal
    superficial: bool = False
    denied_loss: Decimal = ZERO
    fee_only: bool = False


@dataclass
class Report:
    """
    ACB report for one asset: one YearBucket per calendar year touched, plus
    TOTALS accumulated independently over the whole walk.
    """
    asset: str
    reporting_currency: str
    years: Dict[str, YearBucket] = field(default_factory=dict)
    totals: YearBucket = field(default_factory=YearBucket)
    dispositions: List[Disposition] = field(default_factory=list)

    def __getitem__(self, key: str) -> YearBucket:
        if key == TOTALS_KEY:
            return self.totals
        return self.years[str(key)]

    def __contains__(self, key) -> bool:
        return key == TOTALS_KEY or str(key) in self.years

    @property
    def acb_per_unit(self) -> Decimal:
        """Current average cost per unit still held."""
        if self.totals.units <= ZERO:
            return ZERO
        return self.totals.basis / self.totals.units

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        result = {year: bucket.as_dict() for year, bucket in self.years.items()}
        result[TOTALS_KEY] = self.totals.as_dict()
        return result

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), sort_keys=True)

    def to_frame(self) -> pd.DataFrame:
        """Years (then TOTALS) as rows, bucket fields as columns, values kept as Decimal."""
        rows = [
            {'year': key, **{name: getattr(bucket, name) for name in BUCKET_FIELDS}}
            for key, bucket in [*self.years.items(), (TOTALS_KEY, self.totals)]
        ]
        return pd.DataFrame(rows, columns=['year', *BUCKET_FIELDS])

    def summary(self, tax_year: Optional[int] = None) -> dict:
        """
        Summarize capital gains for one tax year, or for the whole history.

        Gains and losses are the allowed amounts: superficial losses are
        reported separately and excluded from the net.
        """
        if tax_year is None:
            bucket = self.totals
            dispositions = self.dispositions
        else:
            bucket = self.years.get(str(tax_year), YearBucket())
            dispositions = [d for d in self.dispositions if d.year == str(tax_year)]

        total_gains = sum((d.gain_loss for d in dispositions if d.gain_loss >= ZERO), ZERO)
        total_losses = sum((-d.gain_loss for d in dispositions
                            if d.gain_loss < ZERO and not d.superficial), ZERO)
        net_gain = bucket.gain_loss

        return {
            'asset': self.asset,
            'tax_year': tax_year,
            'total_gains': total_gains,
            'total_losses': total_losses,
            'net_capital_gain': net_gain,
            'taxable_capital_gain': max(ZERO, net_gain * INCLUSION_RATE),
            'inclusion_rate': INCLUSION_RATE,
            'superficial_loss_count': sum(1 for d in dispositions if d.superficial),
            'superficial_losses': bucket.superficial_losses,
            'income': bucket.income,
            'current_holdings': self.totals.units,
            'current_acb_total': self.totals.basis,
            'current_acb_per_unit': self.acb_per_unit,
        }

    def export_for_schedule_3(self, tax_year: int) -> pd.DataFrame:
        """
        Dispositions of one tax year formatted for CRA Schedule 3.

        Schedule 3 requires:
        - Description of property
        - Proceeds of disposition
        - Adjusted cost base
        - Outlays and expenses
        - Gain (or loss)
        """
        dispositions = [d for d in self.dispositions if d.year == str(tax_year)]
        if not dispositions:
            return pd.DataFrame()

        currency = self.reporting_currency
        data = []
        for d in dispositions:
            data.append({
                'Date of Disposition': d.timestamp.strftime('%Y-%m-%d'),
                'Description': f'{self.asset} - {"fee" if d.fee_only else d.kind.value}',
                'Number of Units': float(d.units),
                f'Proceeds of Disposition ({currency})': float(quantize_money(d.proceeds)),
                f'Adjusted Cost Base ({currency})': float(quantize_money(d.cost)),
                f'Outlays and Expenses ({currency})': float(quantize_money(d.outlay)),
                f'Gain (or Loss) ({currency})': float(quantize_money(d.gain_loss)),
                'Superficial Loss': 'YES' if d.superficial else 'No',
                f'Denied Loss ({currency})': float(quantize_money(d.denied_loss)),
                'Transaction': str(d.tx_id),
            })
        return pd.DataFrame(data)


class _TransactionPrices:
    """
    Prices needed while processing one transaction.

    Resolved lazily and memoized per symbol, so a missing price only fails the
    calculation if that leg actually has to be valued.
    """

    def __init__(self, store: PriceStore, reporting: str, tx: Transaction, asset: str):
        self._store = store
        self._reporting = reporting
        self._tx = tx
        self._asset = asset
        self._cache: Dict[str, Decimal] = {}

    def price(self, symbol: str) -> Decimal:
        if symbol not in self._cache:
            try:
                found = self._store.latest_price(symbol, self._reporting, self._tx.timestamp)
            except PriceNotFound as e:
                raise UnresolvablePriceError(
                    f"No {symbol}/{self._reporting} price at or before "
                    f"{self._tx.timestamp.isoformat()} for {self._tx.kind.value} transaction",
                    asset=self._asset, tx_id=self._tx.id, symbol=symbol, kind=self._tx.kind.value,
                ) from e
            self._cache[symbol] = found.price
        return self._cache[symbol]

    def value(self, symbol: Optional[str], quantity: Optional[Decimal]) -> Decimal:
        """Reporting-currency value of ``quantity`` units of ``symbol``."""
        if symbol is None or quantity is None:
            return ZERO
        if symbol == self._reporting:
            return quantity
        return to_fixed(quantity * self.price(symbol))


@dataclass
class _Walk:
    """Everything one ``calculate`` call mutates. Never shared between calls."""
    asset: str
    reporting: str
    txs: List[Transaction]
    state: AcbState = field(default_factory=AcbState)
    totals: YearBucket = field(default_factory=YearBucket)
    years: Dict[str, YearBucket] = field(default_factory=dict)
    dispositions: List[Disposition] = field(default_factory=list)


class ACBCalculator:
    """
    Calculates the Adjusted Cost Base of one asset per CRA rules.

    Key CRA Concepts Implemented:
    1. Weighted Average Cost: all acquisitions pool together
    2. Superficial Loss Rule: losses denied on reacquisition within 30 days
    3. Income: assets received as income enter the pool at fair market value

    The calculator itself holds no per-run state; it can be shared between
    threads computing different assets.
    """

    def __init__(self, ledger: TransactionLedger, prices: PriceStore, timezone: str = 'UTC'):
        self.ledger = ledger
        self.prices = prices
        self.timezone = timezone
        self._tz = resolve_timezone(timezone)

    def calculate(self, asset: str) -> Report:
        """
        Walk every transaction touching ``asset`` in timestamp order and
        return the per-year report plus lifetime TOTALS.

        Raises an AcbError subclass on the first problem; no partial report
        is returned.
        """
        reporting = self.ledger.get_reporting_currency()
        if not asset:
            raise UnsupportedAssetError("Asset symbol is required")
        if asset == reporting:
            raise UnsupportedAssetError(
                f"Cannot calculate ACB of the reporting currency {reporting}", asset=asset
            )

        walk = _Walk(asset=asset, reporting=reporting, txs=self.ledger.get_transactions(asset))

        with localcontext(engine_context()):
            for index, tx in enumerate(walk.txs):
                self._process_transaction(walk, index, tx)

        log_event('ACB', f"Calculated {asset}", {
            'transactions': len(walk.txs),
            'years': list(walk.years),
            'units': walk.state.units,
            'basis': walk.state.basis,
        })
        return Report(
            asset=asset,
            reporting_currency=reporting,
            years=walk.years,
            totals=walk.totals,
            dispositions=walk.dispositions,
        )

    def tax_year(self, tx: Transaction) -> str:
        return str(tx.timestamp.astimezone(self._tz).year)

    def _process_transaction(self, walk: _Walk, index: int, tx: Transaction) -> None:
        asset = walk.asset
        tx.validate(walk.reporting, asset)

        year = self.tax_year(tx)
        bucket = walk.years.get(year)
        if bucket is None:
            bucket = walk.years[year] = YearBucket()

        prices = _TransactionPrices(self.prices, walk.reporting, tx, asset)
        logger.debug(f"[ACB] {asset} tx {tx.id} {tx.kind.value} at {tx.timestamp.isoformat()}")

        if tx.kind in DISPOSAL_TYPES and tx.send_asset == asset:
            self._process_disposition(walk, index, tx, bucket, prices)

        if tx.kind in ACQUISITION_TYPES and tx.receive_asset == asset:
            self._process_acquisition(walk, tx, bucket, prices)

        if tx.fee_asset == asset and tx.send_asset != asset and tx.receive_asset != asset:
            self._process_fee_disposition(walk, index, tx, bucket, prices)

        self._check_invariants(walk, tx)

    def _process_disposition(self, walk: _Walk, index: int, tx: Transaction,
                             bucket: YearBucket, prices: _TransactionPrices) -> None:
        """
        Sell, Send or Trade away the asset.

        Proceeds:
            Sell   the reporting currency received
            Send   fair market value of the units sent
            Trade  fair market value of the asset received

        The fee of a Sell or Send is an outlay. The fee of a Trade is not:
        it is added to the cost of the asset received instead.
        """
        if tx.kind == TransactionType.SELL:
            proceeds = tx.receive_quantity
        elif tx.kind == TransactionType.SEND:
            proceeds = prices.value(tx.send_asset, tx.send_quantity)
        else:
            proceeds = prices.value(tx.receive_asset, tx.receive_quantity)

        if tx.kind == TransactionType.TRADE:
            outlay = ZERO
        else:
            outlay = prices.value(tx.fee_asset, tx.fee_quantity)

        self._dispose(walk, index, tx, bucket, tx.send_quantity, proceeds, outlay)

    def _process_fee_disposition(self, walk: _Walk, index: int, tx: Transaction,
                                 bucket: YearBucket, prices: _TransactionPrices) -> None:
        """
        A fee paid in the asset on a transaction that otherwise doesn't touch
        it. Spending the units on the fee is a disposition at fair market
        value, with no separate outlay.
        """
        proceeds = prices.value(tx.fee_asset, tx.fee_quantity)
        self._dispose(walk, index, tx, bucket, tx.fee_quantity, proceeds, ZERO, fee_only=True)

    def _dispose(self, walk: _Walk, index: int, tx: Transaction, bucket: YearBucket,
                 units: Decimal, proceeds: Decimal, outlay: Decimal, fee_only: bool = False) -> None:
        state = walk.state
        if state.units <= ZERO:
            raise DepletedHoldingsError(
                "Cannot dispose of an asset with zero recorded units", asset=walk.asset, tx_id=tx.id
            )

        if units == state.units:
            cost = state.basis
        else:
            cost = min(to_fixed((units / state.units) * state.basis), state.basis)
        state.basis -= cost
        state.units -= units
        for acc in (walk.totals, bucket):
            acc.basis -= cost
            acc.units -= units
            acc.proceeds += proceeds
            acc.costs += cost
            acc.outlays += outlay

        gain_loss = proceeds - cost - outlay
        denied = ZERO
        if gain_loss < ZERO and is_superficial_loss(tx, walk.txs, index, walk.asset):
            denied = -gain_loss
            state.basis += denied
            for acc in (walk.totals, bucket):
                acc.basis += denied
                acc.costs -= denied
                acc.superficial_losses += denied
            log_event('ACB', f"Superficial loss denied on {walk.asset}",
                      {'transaction': tx.id, 'denied': denied}, level=logging.WARNING)
        else:
            walk.totals.gain_loss += gain_loss
            bucket.gain_loss += gain_loss

        walk.dispositions.append(Disposition(
            tx_id=tx.id,
            timestamp=tx.timestamp,
            year=self.tax_year(tx),
            kind=tx.kind,
            units=units,
            proceeds=proceeds,
            cost=cost,
            outlay=outlay,
            gain_loss=gain_loss,
            superficial=denied > ZERO,
            denied_loss=denied,
            fee_only=fee_only,
        ))

    def _process_acquisition(self, walk: _Walk, tx: Transaction,
                             bucket: YearBucket, prices: _TransactionPrices) -> None:
        """
        Buy, Receive or Trade into the asset.

        Cost:
            Buy                 the reporting currency spent
            Receive (income)    fair market value received, also counted as income
            Receive (other)     zero; a gift or transfer in carries no cost base
            Trade               fair market value of the asset given up

        The fee, valued in the reporting currency, is always added to the cost.
        """
        income = ZERO
        if tx.kind == TransactionType.BUY:
            cost = tx.send_quantity
        elif tx.kind == TransactionType.RECEIVE:
            if tx.is_income:
                cost = income = prices.value(tx.receive_asset, tx.receive_quantity)
            else:
                cost = ZERO
        else:
            cost = prices.value(tx.send_asset, tx.send_quantity)

        fee = prices.value(tx.fee_asset, tx.fee_quantity)

        walk.state.basis += cost + fee
        walk.state.units += tx.receive_quantity
        for acc in (walk.totals, bucket):
            acc.basis += cost + fee
            acc.units += tx.receive_quantity
            acc.income += income

    def _check_invariants(self, walk: _Walk, tx: Transaction) -> None:
        checks = (
            ('basis', walk.state.basis),
            ('units', walk.state.units),
            ('costs', walk.totals.costs),
            ('outlays', walk.totals.outlays),
            ('income', walk.totals.income),
        )
        for name, value in checks:
            if value < ZERO:
                raise ConsistencyError(
                    f"{name} went negative ({value}) after {tx.kind.value} transaction",
                    asset=walk.asset, tx_id=tx.id, field=name, value=value,
                )


def calculate_acb(asset: str, ledger: TransactionLedger, prices: PriceStore,
                  timezone: str = 'UTC') -> Report:
    """Calculate the ACB report of ``asset``. See ``ACBCalculator.calculate``."""
    return ACBCalculator(ledger, prices, timezone).calculate(asset)
