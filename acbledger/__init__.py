"""ACBLedger - Adjusted Cost Base calculator for crypto assets."""

from acbledger.acb_engine import ACBCalculator, Report, YearBucket, calculate_acb, is_superficial_loss
from acbledger.errors import (
    AcbError,
    ConfigurationError,
    ConsistencyError,
    DepletedHoldingsError,
    MalformedTransactionError,
    PriceNotFound,
    UnresolvablePriceError,
    UnsupportedAssetError,
)
from acbledger.ledger import TransactionLedger
from acbledger.models import Transaction, TransactionType
from acbledger.portfolio import PortfolioResult, calculate_portfolio
from acbledger.prices import Price, PriceStore

__version__ = "0.2.0"
