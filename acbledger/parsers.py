"""
ACBLedger Parsers
=================
Loads transactions and historical prices from CSV exports.

Transaction CSV (one row per transaction, header names are case-insensitive):

    id, unix_timestamp | timestamp | date, type,
    send_asset_symbol, send_asset_quantity,
    receive_asset_symbol, receive_asset_quantity,
    fee_asset_symbol, fee_asset_quantity,
    is_income, notes

Price CSV:

    unix_timestamp | timestamp | date, asset_symbol, fiat_symbol, price | close

A single-asset price file (just date and close, as downloaded from Yahoo
Finance) can be loaded by passing the asset and reporting symbols explicitly.

Numeric timestamps are Unix time: milliseconds when larger than 10^11,
seconds otherwise. Text timestamps without an offset are taken as UTC.

Parsing is lenient: rows that can't be read are skipped and reported as
warnings so the rest of the file still loads. Whether the surviving
transactions make sense together is checked later, by the engine.
"""

import pandas as pd
from datetime import datetime, timezone
from decimal import InvalidOperation
from io import StringIO
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union

from acbledger.decimal_utils import to_decimal
from acbledger.models import Transaction, TransactionType, ensure_utc
from acbledger.prices import PriceStore

# Unix timestamps above this are in milliseconds
MILLISECONDS_THRESHOLD = 10 ** 11

TRUE_VALUES = {'1', 'true', 't', 'yes', 'y'}

TRANSACTION_COLUMNS = {
    'id': ['id', 'tx_id', 'txid', 'transaction_id'],
    'timestamp': ['unix_timestamp', 'timestamp', 'date', 'datetime', 'time', 'date (utc)'],
    'type': ['type', 'kind', 'tx_type', 'transaction_type'],
    'send_asset': ['send_asset_symbol', 'send_asset', 'sent_asset'],
    'send_quantity': ['send_asset_quantity', 'send_quantity', 'sent_quantity'],
    'receive_asset': ['receive_asset_symbol', 'receive_asset', 'received_asset'],
    'receive_quantity': ['receive_asset_quantity', 'receive_quantity', 'received_quantity'],
    'fee_asset': ['fee_asset_symbol', 'fee_asset'],
    'fee_quantity': ['fee_asset_quantity', 'fee_quantity', 'fee'],
    'is_income': ['is_income', 'income'],
    'notes': ['notes', 'note', 'label', 'memo', 'description'],
}

PRICE_COLUMNS = {
    'timestamp': ['unix_timestamp', 'timestamp', 'date', 'datetime', 'time'],
    'asset': ['asset_symbol', 'asset', 'symbol'],
    'reporting': ['fiat_symbol', 'fiat', 'reporting_symbol', 'currency', 'quote'],
    'price': ['price', 'close', 'value'],
}


def _read_csv(file_buffer: Union[BinaryIO, str]) -> pd.DataFrame:
    """Read a CSV keeping every cell as text, so quantities reach Decimal unrounded."""
    if hasattr(file_buffer, 'read'):
        content = file_buffer.read()
        if isinstance(content, bytes):
            content = content.decode('utf-8')
    else:
        content = str(file_buffer)

    df = pd.read_csv(StringIO(content), dtype=str, keep_default_na=False, skipinitialspace=True)
    df.columns = df.columns.str.strip().str.lower()
    return df


def _find_columns(df: pd.DataFrame, column_map: Dict[str, List[str]]) -> Dict[str, str]:
    found = {}
    for target, candidates in column_map.items():
        for candidate in candidates:
            if candidate in df.columns:
                found[target] = candidate
                break
    return found


def _cell(row: pd.Series, found: Dict[str, str], name: str) -> Optional[str]:
    if name not in found:
        return None
    value = str(row[found[name]]).strip()
    return value or None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a Unix timestamp (seconds or milliseconds) or a date string into
    an aware UTC datetime. Returns None if the value can't be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)

    text = str(value).strip()
    if not text:
        return None

    try:
        number = float(text)
    except ValueError:
        number = None

    if number is not None:
        if number != number:
            return None
        seconds = number / 1000 if abs(number) > MILLISECONDS_THRESHOLD else number
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    try:
        parsed = pd.to_datetime(text, utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def _parse_symbol(value: Optional[str]) -> Optional[str]:
    return value.upper() if value else None


def parse_transactions_csv(file_buffer: Union[BinaryIO, str]) -> Tuple[List[Transaction], List[str]]:
    """
    Parse a transaction CSV into Transaction objects.

    Returns:
        Tuple of (transactions, warnings)
        - transactions: parsed rows, in file order
        - warnings: one message per skipped row, or a single ERROR message
          if the file itself can't be used
    """
    warnings = []
    transactions = []

    try:
        df = _read_csv(file_buffer)
    except (ValueError, UnicodeDecodeError, pd.errors.ParserError) as e:
        return [], [f"ERROR: Failed to parse CSV: {e}"]

    found = _find_columns(df, TRANSACTION_COLUMNS)
    for required in ('timestamp', 'type'):
        if required not in found:
            warnings.append(f"ERROR: Could not find {required} column in CSV")
    if warnings:
        return [], warnings

    for idx, row in df.iterrows():
        line = idx + 1
        try:
            timestamp = parse_timestamp(_cell(row, found, 'timestamp'))
            if timestamp is None:
                warnings.append(f"Row {line}: Could not parse timestamp '{_cell(row, found, 'timestamp')}'")
                continue

            quantities = {}
            for name in ('send_quantity', 'receive_quantity', 'fee_quantity'):
                raw = _cell(row, found, name)
                quantities[name] = to_decimal(raw) if raw is not None else None

            is_income = (_cell(row, found, 'is_income') or '').lower() in TRUE_VALUES

            tx = Transaction(
                id=_cell(row, found, 'id') or line,
                timestamp=timestamp,
                kind=TransactionType.parse(_cell(row, found, 'type')),
                send_asset=_parse_symbol(_cell(row, found, 'send_asset')),
                receive_asset=_parse_symbol(_cell(row, found, 'receive_asset')),
                fee_asset=_parse_symbol(_cell(row, found, 'fee_asset')),
                is_income=is_income,
                notes=_cell(row, found, 'notes') or '',
                **quantities,
            )
            transactions.append(tx)
        except (ValueError, InvalidOperation) as e:
            warnings.append(f"Row {line}: Error processing - {e}")

    if not transactions:
        warnings.append("No valid transactions found in CSV")

    return transactions, warnings


def load_prices_csv(file_buffer: Union[BinaryIO, str], store: PriceStore,
                    asset: Optional[str] = None, reporting: Optional[str] = None) -> Tuple[bool, str]:
    """
    Load historical prices from a CSV into ``store``.

    ``asset`` and ``reporting`` fill in for missing asset / fiat columns.

    Returns:
        Tuple of (success, message)
    """
    try:
        df = _read_csv(file_buffer)
    except (ValueError, UnicodeDecodeError, pd.errors.ParserError) as e:
        return False, f"Error loading price CSV: {e}"

    found = _find_columns(df, PRICE_COLUMNS)
    if 'timestamp' not in found or 'price' not in found:
        return False, "Could not identify timestamp and price columns"
    if 'asset' not in found and not asset:
        return False, "No asset column in CSV and no asset symbol given"
    if 'reporting' not in found and not reporting:
        return False, "No fiat column in CSV and no reporting currency given"

    loaded_count = 0
    skipped = 0
    for _, row in df.iterrows():
        timestamp = parse_timestamp(_cell(row, found, 'timestamp'))
        symbol = _parse_symbol(_cell(row, found, 'asset')) or _parse_symbol(asset)
        fiat = _parse_symbol(_cell(row, found, 'reporting')) or _parse_symbol(reporting)
        try:
            price = to_decimal(_cell(row, found, 'price').replace('$', ''))
        except (AttributeError, InvalidOperation):
            price = None
        if timestamp is None or price is None or not symbol or not fiat:
            skipped += 1
            continue
        store.add_price(symbol, fiat, timestamp, price)
        loaded_count += 1

    if loaded_count == 0:
        return False, "No valid price data found in CSV"
    message = f"Loaded {loaded_count} prices"
    if skipped:
        message += f" ({skipped} rows skipped)"
    return True, message
