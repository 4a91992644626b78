"""
ACBLedger Models
================
Transaction record shared by the ledger, the parsers and the ACB engine.

A transaction can touch up to three assets: what was sent, what was received
and what the fee was paid in. Which legs must be present depends on the kind:

    Buy / Sell / Trade   send + receive
    Send                 send only
    Receive              receive only

The fee leg is optional for every kind, but its asset and quantity come as a
pair. A Buy always spends the reporting currency and a Sell always receives it;
anything else is a Trade.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple

from acbledger.decimal_utils import ZERO, to_decimal
from acbledger.errors import MalformedTransactionError


class TransactionType(str, Enum):
    BUY = 'Buy'
    SELL = 'Sell'
    TRADE = 'Trade'
    SEND = 'Send'
    RECEIVE = 'Receive'

    @classmethod
    def parse(cls, value: Any) -> 'TransactionType':
        """Case-insensitive lookup by value ('buy', 'Buy', 'BUY')."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown transaction type: {value!r}")


# Kinds that can reduce / increase holdings of the sent / received asset
DISPOSAL_TYPES = frozenset({TransactionType.SELL, TransactionType.SEND, TransactionType.TRADE})
ACQUISITION_TYPES = frozenset({TransactionType.BUY, TransactionType.RECEIVE, TransactionType.TRADE})


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Transaction:
    """A single ledger transaction. Immutable once handed to the engine."""
    id: Any
    timestamp: datetime
    kind: TransactionType
    send_asset: Optional[str] = None
    send_quantity: Optional[Decimal] = None
    receive_asset: Optional[str] = None
    receive_quantity: Optional[Decimal] = None
    fee_asset: Optional[str] = None
    fee_quantity: Optional[Decimal] = None
    is_income: bool = False
    notes: str = field(default='', compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'kind', TransactionType.parse(self.kind))
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))
        for name in ('send_quantity', 'receive_quantity', 'fee_quantity'):
            raw = getattr(self, name)
            if raw is not None and not isinstance(raw, Decimal):
                object.__setattr__(self, name, to_decimal(raw))

    @property
    def send(self) -> Tuple[Optional[str], Optional[Decimal]]:
        return self.send_asset, self.send_quantity

    @property
    def receive(self) -> Tuple[Optional[str], Optional[Decimal]]:
        return self.receive_asset, self.receive_quantity

    @property
    def fee(self) -> Tuple[Optional[str], Optional[Decimal]]:
        return self.fee_asset, self.fee_quantity

    def references(self, asset: str) -> bool:
        return asset in (self.send_asset, self.receive_asset, self.fee_asset)

    def validate(self, reporting_currency: str, asset: Optional[str] = None) -> None:
        """
        Check the per-kind leg requirements.

        Raises MalformedTransactionError naming this transaction on the first
        problem found. ``asset`` is only used to label the error.
        """
        def fail(problem: str):
            raise MalformedTransactionError(
                f"{self.kind.value} transaction {problem}", asset=asset, tx_id=self.id
            )

        legs = {'send': self.send, 'receive': self.receive, 'fee': self.fee}
        present = {}
        for leg, (symbol, quantity) in legs.items():
            if (symbol is None) != (quantity is None):
                fail(f"has an incomplete {leg} asset/quantity pair")
            if quantity is not None and quantity <= ZERO:
                fail(f"has a non-positive {leg} quantity ({quantity})")
            present[leg] = symbol is not None

        if self.kind in (TransactionType.BUY, TransactionType.SELL, TransactionType.TRADE):
            if not present['send']:
                fail("requires a send asset and quantity")
            if not present['receive']:
                fail("requires a receive asset and quantity")
        elif self.kind == TransactionType.SEND:
            if not present['send']:
                fail("requires a send asset and quantity")
            if present['receive']:
                fail("must not have a receive leg")
        elif self.kind == TransactionType.RECEIVE:
            if not present['receive']:
                fail("requires a receive asset and quantity")
            if present['send']:
                fail("must not have a send leg")

        if self.kind == TransactionType.BUY and self.send_asset != reporting_currency:
            fail(f"must spend the reporting currency {reporting_currency}, not {self.send_asset}")
        if self.kind == TransactionType.SELL and self.receive_asset != reporting_currency:
            fail(f"must receive the reporting currency {reporting_currency}, not {self.receive_asset}")
