"""
Handles loading and validation of ACBLedger settings.

Settings come from environment variables, optionally seeded from a ``.env``
file via python-dotenv. Variables already present in the environment win over
the file.

    ACBLEDGER_REPORTING_CURRENCY   fiat symbol every value is expressed in (e.g. CAD)
    ACBLEDGER_TIMEZONE             zone used to decide a transaction's tax year (UTC)
    ACBLEDGER_MAX_WORKERS          concurrent per-asset calculations (4)
    ACBLEDGER_LOG_LEVEL            logging level name (INFO)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

import pytz
from dotenv import load_dotenv

from acbledger.errors import ConfigurationError

ENV_PREFIX = "ACBLEDGER_"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_MAX_WORKERS = 4
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    reporting_currency: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    max_workers: int = DEFAULT_MAX_WORKERS
    log_level: str = DEFAULT_LOG_LEVEL


def resolve_timezone(name: str):
    """Return the pytz zone for ``name``, raising ConfigurationError if unknown."""
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ConfigurationError(f"Unknown time zone: {name!r}")


def load_settings(env_file: Optional[Union[str, Path]] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.

    ``env_file`` is loaded with python-dotenv first (without overriding
    existing variables). ``environ`` replaces ``os.environ`` as the source,
    which is mainly useful in tests.
    """
    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=False)
    env = os.environ if environ is None else environ

    def get(name: str) -> Optional[str]:
        value = env.get(ENV_PREFIX + name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    reporting_currency = get("REPORTING_CURRENCY")
    if reporting_currency:
        reporting_currency = reporting_currency.upper()

    timezone = get("TIMEZONE") or DEFAULT_TIMEZONE
    resolve_timezone(timezone)

    raw_workers = get("MAX_WORKERS")
    if raw_workers is None:
        max_workers = DEFAULT_MAX_WORKERS
    else:
        try:
            max_workers = int(raw_workers)
        except ValueError:
            raise ConfigurationError(f"{ENV_PREFIX}MAX_WORKERS must be an integer, got {raw_workers!r}")
        if max_workers < 1:
            raise ConfigurationError(f"{ENV_PREFIX}MAX_WORKERS must be at least 1, got {max_workers}")

    log_level = (get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()

    return Settings(
        reporting_currency=reporting_currency,
        timezone=timezone,
        max_workers=max_workers,
        log_level=log_level,
    )
