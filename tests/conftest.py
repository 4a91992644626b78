"""
Shared fixtures for the ACBLedger test suite.

    tx      - TxBuilder producing transactions dated in days from BASE_DATE
    ledger  - empty TransactionLedger reporting in CAD
    prices  - empty PriceStore
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from acbledger.ledger import TransactionLedger
from acbledger.models import Transaction, TransactionType
from acbledger.prices import PriceStore

REPORTING = 'CAD'
BASE_DATE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def day(offset: float) -> datetime:
    """BASE_DATE plus ``offset`` days."""
    return BASE_DATE + timedelta(days=offset)


class TxBuilder:
    """Builds transactions with sequential ids. ``when`` is a day offset or a datetime."""

    def __init__(self, reporting: str = REPORTING):
        self.reporting = reporting
        self._next_id = 1

    def _make(self, kind, when, fee: Optional[str] = None, fee_asset: Optional[str] = None, **legs):
        timestamp = when if isinstance(when, datetime) else day(when)
        if fee is not None:
            legs['fee_asset'] = fee_asset or self.reporting
            legs['fee_quantity'] = fee
        tx = Transaction(id=self._next_id, timestamp=timestamp, kind=kind, **legs)
        self._next_id += 1
        return tx

    def buy(self, when, asset, units, cost, **fee):
        return self._make(TransactionType.BUY, when,
                          send_asset=self.reporting, send_quantity=cost,
                          receive_asset=asset, receive_quantity=units, **fee)

    def sell(self, when, asset, units, proceeds, **fee):
        return self._make(TransactionType.SELL, when,
                          send_asset=asset, send_quantity=units,
                          receive_asset=self.reporting, receive_quantity=proceeds, **fee)

    def trade(self, when, send_asset, send_units, receive_asset, receive_units, **fee):
        return self._make(TransactionType.TRADE, when,
                          send_asset=send_asset, send_quantity=send_units,
                          receive_asset=receive_asset, receive_quantity=receive_units, **fee)

    def send(self, when, asset, units, **fee):
        return self._make(TransactionType.SEND, when, send_asset=asset, send_quantity=units, **fee)

    def receive(self, when, asset, units, is_income=False, **fee):
        return self._make(TransactionType.RECEIVE, when,
                          receive_asset=asset, receive_quantity=units, is_income=is_income, **fee)


@pytest.fixture
def tx():
    return TxBuilder()


@pytest.fixture
def ledger():
    return TransactionLedger(reporting_currency=REPORTING)


@pytest.fixture
def prices():
    return PriceStore()
