"""
Portfolio-wide ACB: one engine run per asset, fanned out over a thread pool.

Each asset's calculation only reads the ledger and the price store, so runs
are independent. A failure in one asset is recorded against that asset and
the others still complete.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from acbledger.acb_engine import ACBCalculator, Report
from acbledger.config import DEFAULT_MAX_WORKERS
from acbledger.errors import AcbError, ConfigurationError
from acbledger.ledger import TransactionLedger
from acbledger.logging_utils import log_error, log_event
from acbledger.prices import PriceStore


@dataclass
class PortfolioResult:
    reports: Dict[str, Report] = field(default_factory=dict)
    errors: Dict[str, AcbError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def as_dict(self) -> Dict[str, dict]:
        result = {asset: report.as_dict() for asset, report in self.reports.items()}
        for asset, error in self.errors.items():
            result[asset] = {'error': str(error), 'type': type(error).__name__}
        return dict(sorted(result.items()))


def calculate_portfolio(ledger: TransactionLedger, prices: PriceStore,
                        assets: Optional[Iterable[str]] = None,
                        max_workers: int = DEFAULT_MAX_WORKERS,
                        timezone: str = 'UTC') -> PortfolioResult:
    """
    Calculate ACB reports for ``assets`` (default: every non-reporting asset
    in the ledger).

    A missing reporting currency is raised immediately since no asset could
    succeed. Any other AcbError is captured per asset in ``errors``.
    """
    reporting = ledger.get_reporting_currency()
    if max_workers < 1:
        raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")

    symbols: List[str] = ledger.assets() if assets is None else sorted(set(assets))
    symbols = [s for s in symbols if s != reporting]
    calculator = ACBCalculator(ledger, prices, timezone)
    result = PortfolioResult()

    if not symbols:
        return result

    with ThreadPoolExecutor(max_workers=min(max_workers, len(symbols))) as executor:
        futures = {executor.submit(calculator.calculate, symbol): symbol for symbol in symbols}
        for future in as_completed(futures):
            symbol = futures[future]
            try:
                result.reports[symbol] = future.result()
            except AcbError as e:
                log_error('Portfolio', type(e).__name__, str(e), {'asset': symbol})
                result.errors[symbol] = e

    result.reports = dict(sorted(result.reports.items()))
    result.errors = dict(sorted(result.errors.items()))
    log_event('Portfolio', f"Calculated {len(result.reports)} of {len(symbols)} assets",
              {'failed': list(result.errors)})
    return result
