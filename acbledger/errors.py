"""
ACBLedger Errors
================
Every failure of an ACB calculation is an ``AcbError`` naming the asset being
calculated and, where one is involved, the offending transaction id.

None of these are retried or recovered inside the engine. Recovery means
fixing the upstream data (adding a missing price, correcting a transaction)
and running the calculation again.
"""

from datetime import datetime
from typing import Any, Optional


class AcbError(Exception):
    """Base class for failures that abort a single-asset ACB calculation."""

    def __init__(self, message: str, asset: Optional[str] = None, tx_id: Any = None):
        self.message = message
        self.asset = asset
        self.tx_id = tx_id
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.asset:
            context.append(f"asset={self.asset}")
        if self.tx_id is not None:
            context.append(f"transaction={self.tx_id}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ConfigurationError(AcbError):
    """No reporting currency is configured, or a setting is invalid."""


class UnsupportedAssetError(AcbError):
    """The requested asset cannot be calculated (empty, or the reporting currency itself)."""


class MalformedTransactionError(AcbError):
    """A transaction is missing an asset/quantity pair its kind requires."""


class UnresolvablePriceError(AcbError):
    """A price needed to value part of a transaction does not exist."""

    def __init__(self, message: str, asset: Optional[str] = None, tx_id: Any = None,
                 symbol: Optional[str] = None, kind: Optional[str] = None):
        self.symbol = symbol
        self.kind = kind
        super().__init__(message, asset=asset, tx_id=tx_id)


class DepletedHoldingsError(AcbError):
    """A disposition was attempted while no units of the asset were held."""


class ConsistencyError(AcbError):
    """A non-negativity invariant failed after processing a transaction."""

    def __init__(self, message: str, asset: Optional[str] = None, tx_id: Any = None,
                 field: Optional[str] = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message, asset=asset, tx_id=tx_id)


class PriceNotFound(LookupError):
    """
    Raised by the price store when no price was ever recorded at or before
    the requested instant. The engine decides whether that is fatal.
    """

    def __init__(self, symbol: str, reporting: str, at: datetime):
        self.symbol = symbol
        self.reporting = reporting
        self.at = at
        super().__init__(f"No {symbol}/{reporting} price recorded at or before {at.isoformat()}")
