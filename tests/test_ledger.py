"""
Tests for the in-memory transaction feed.
"""

import pytest

from acbledger.errors import ConfigurationError
from acbledger.ledger import TransactionLedger


class TestTransactionLedger:

    def test_reporting_currency_required(self):
        with pytest.raises(ConfigurationError, match='No reporting currency'):
            TransactionLedger().get_reporting_currency()

    def test_blank_reporting_currency_is_missing(self):
        with pytest.raises(ConfigurationError):
            TransactionLedger('').get_reporting_currency()

    def test_filtered_and_sorted(self, tx, ledger):
        late = tx.buy(5, 'BTC', '1', '100')
        eth = tx.buy(1, 'ETH', '1', '10')
        early = tx.sell(2, 'BTC', '1', '90')
        fee_only = tx.buy(3, 'ETH', '1', '10', fee='0.001', fee_asset='BTC')
        ledger.extend([late, eth, early, fee_only])

        assert ledger.get_transactions('BTC') == [early, fee_only, late]
        assert ledger.get_transactions() == [eth, early, fee_only, late]

    def test_equal_timestamps_keep_insertion_order(self, tx, ledger):
        first = tx.buy(1, 'BTC', '1', '100')
        second = tx.sell(1, 'BTC', '1', '90')
        ledger.extend([first, second])

        assert ledger.get_transactions('BTC') == [first, second]

    def test_assets_exclude_reporting_currency(self, tx, ledger):
        ledger.extend([
            tx.buy(0, 'BTC', '1', '100'),
            tx.trade(1, 'BTC', '1', 'ETH', '15', fee='0.1', fee_asset='SOL'),
        ])

        assert ledger.assets() == ['BTC', 'ETH', 'SOL']
        assert len(ledger) == 2
