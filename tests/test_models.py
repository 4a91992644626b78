"""
Tests for the Transaction model and its per-kind validation.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from acbledger.errors import MalformedTransactionError
from acbledger.models import Transaction, TransactionType, ensure_utc
from conftest import BASE_DATE


class TestTransactionType:

    @pytest.mark.parametrize('raw', ['buy', 'Buy', 'BUY', ' buy '])
    def test_parse_is_case_insensitive(self, raw):
        assert TransactionType.parse(raw) is TransactionType.BUY

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            TransactionType.parse('Stake')


class TestTransaction:

    def test_quantities_coerced_to_decimal(self):
        tx = Transaction(id=1, timestamp=BASE_DATE, kind='buy',
                         send_asset='CAD', send_quantity='100.50',
                         receive_asset='BTC', receive_quantity=0.1)

        assert tx.kind is TransactionType.BUY
        assert tx.send_quantity == Decimal('100.50')
        assert tx.receive_quantity == Decimal('0.1')
        assert tx.fee_quantity is None

    def test_naive_timestamp_is_utc(self):
        tx = Transaction(id=1, timestamp=datetime(2024, 1, 1), kind='Receive',
                         receive_asset='BTC', receive_quantity='1')

        assert tx.timestamp.tzinfo is not None
        assert tx.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_aware_timestamp_converted_to_utc(self):
        eastern = timezone(timedelta(hours=-5))
        value = ensure_utc(datetime(2024, 1, 1, 20, tzinfo=eastern))

        assert value == datetime(2024, 1, 2, 1, tzinfo=timezone.utc)
        assert value.utcoffset() == timedelta(0)

    def test_references(self, tx):
        trade = tx.trade(0, 'BTC', '1', 'ETH', '15', fee='0.1', fee_asset='SOL')

        assert trade.references('BTC')
        assert trade.references('ETH')
        assert trade.references('SOL')
        assert not trade.references('CAD')


class TestValidation:
    """Leg requirements per transaction kind."""

    def make(self, kind, **legs):
        return Transaction(id='t1', timestamp=BASE_DATE, kind=kind, **legs)

    def test_valid_kinds_pass(self, tx):
        for valid in (
            tx.buy(0, 'BTC', '1', '100', fee='1'),
            tx.sell(0, 'BTC', '1', '100'),
            tx.trade(0, 'BTC', '1', 'ETH', '15'),
            tx.send(0, 'BTC', '1', fee='0.0001', fee_asset='BTC'),
            tx.receive(0, 'BTC', '1', is_income=True),
        ):
            valid.validate('CAD')

    @pytest.mark.parametrize('kind, legs', [
        ('Sell', {'send_asset': 'BTC', 'send_quantity': '1'}),
        ('Buy', {'receive_asset': 'BTC', 'receive_quantity': '1'}),
        ('Trade', {'send_asset': 'BTC', 'send_quantity': '1'}),
        ('Send', {'receive_asset': 'BTC', 'receive_quantity': '1'}),
        ('Receive', {'send_asset': 'BTC', 'send_quantity': '1'}),
        ('Send', {'send_asset': 'BTC', 'send_quantity': '1',
                  'receive_asset': 'ETH', 'receive_quantity': '1'}),
        ('Receive', {'receive_asset': 'BTC', 'receive_quantity': '1',
                     'send_asset': 'ETH', 'send_quantity': '1'}),
    ])
    def test_missing_or_extra_legs(self, kind, legs):
        with pytest.raises(MalformedTransactionError) as exc_info:
            self.make(kind, **legs).validate('CAD', 'BTC')

        assert exc_info.value.tx_id == 't1'
        assert exc_info.value.asset == 'BTC'

    def test_incomplete_fee_pair(self):
        tx = self.make('Receive', receive_asset='BTC', receive_quantity='1', fee_quantity='0.1')

        with pytest.raises(MalformedTransactionError, match='incomplete fee'):
            tx.validate('CAD')

    def test_non_positive_quantity(self):
        tx = self.make('Send', send_asset='BTC', send_quantity='0')

        with pytest.raises(MalformedTransactionError, match='non-positive'):
            tx.validate('CAD')

    def test_buy_must_spend_reporting_currency(self):
        tx = self.make('Buy', send_asset='USD', send_quantity='100',
                       receive_asset='BTC', receive_quantity='1')

        with pytest.raises(MalformedTransactionError, match='reporting currency CAD'):
            tx.validate('CAD')

    def test_sell_must_receive_reporting_currency(self):
        tx = self.make('Sell', send_asset='BTC', send_quantity='1',
                       receive_asset='ETH', receive_quantity='15')

        with pytest.raises(MalformedTransactionError):
            tx.validate('CAD')

    def test_error_message_names_transaction(self):
        tx = self.make('Send', send_asset='BTC', send_quantity='-1')

        with pytest.raises(MalformedTransactionError) as exc_info:
            tx.validate('CAD', 'BTC')

        assert 'asset=BTC' in str(exc_info.value)
        assert 'transaction=t1' in str(exc_info.value)
