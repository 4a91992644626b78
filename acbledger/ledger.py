"""
ACBLedger Transaction Feed
==========================
In-memory transaction store and the reporting-currency setting.

The engine only ever reads from here: the reporting currency, and the
transactions touching one asset in ascending timestamp order.
"""

from typing import Iterable, List, Optional

from acbledger.errors import ConfigurationError
from acbledger.models import Transaction


class TransactionLedger:
    """Holds every transaction and the single reporting (fiat) currency."""

    def __init__(self, reporting_currency: Optional[str] = None,
                 transactions: Optional[Iterable[Transaction]] = None):
        self.reporting_currency = reporting_currency or None
        self._transactions: List[Transaction] = []
        if transactions:
            self.extend(transactions)

    def __len__(self) -> int:
        return len(self._transactions)

    def add(self, tx: Transaction) -> Transaction:
        self._transactions.append(tx)
        return tx

    def extend(self, transactions: Iterable[Transaction]) -> int:
        count = 0
        for tx in transactions:
            self.add(tx)
            count += 1
        return count

    def get_reporting_currency(self) -> str:
        if not self.reporting_currency:
            raise ConfigurationError("No reporting currency configured")
        return self.reporting_currency

    def get_transactions(self, asset: Optional[str] = None) -> List[Transaction]:
        """
        Transactions referencing ``asset`` as send, receive or fee asset,
        ascending by timestamp. Equal timestamps keep insertion order.
        """
        txs = self._transactions
        if asset is not None:
            txs = [tx for tx in txs if tx.references(asset)]
        return sorted(txs, key=lambda tx: tx.timestamp)

    def assets(self) -> List[str]:
        """Every asset referenced by a transaction, except the reporting currency."""
        symbols = set()
        for tx in self._transactions:
            symbols.update(s for s in (tx.send_asset, tx.receive_asset, tx.fee_asset) if s)
        symbols.discard(self.reporting_currency)
        return sorted(symbols)
