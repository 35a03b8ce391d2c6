"""
Data Normalizer

Symbol translation between display form and vendor form, plus tolerant
parsing of vendor values. Everything here is pure and network-free.

Display symbols are uppercase and carry no exchange suffix ("RELIANCE").
Vendor symbols carry the configured market suffix ("RELIANCE.NS").
"""
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from loguru import logger


# Exchange suffixes stripped from vendor symbols for display
KNOWN_EXCHANGE_SUFFIXES = (".NS", ".BO", ".TO", ".L")

_SYMBOL_PATTERN = re.compile(r"^[A-Za-z0-9.\-]+$")

_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)


def is_valid_symbol(symbol: Optional[str]) -> bool:
    """Alphanumeric with optional dots and dashes."""
    if not symbol or not symbol.strip():
        return False
    return bool(_SYMBOL_PATTERN.match(symbol.strip()))


def clean_symbol(symbol: Optional[str], market_suffix: str = "") -> str:
    """Convert a vendor or user symbol to display form."""
    if not symbol:
        return ""
    cleaned = symbol.strip().upper()
    suffixes = KNOWN_EXCHANGE_SUFFIXES
    if market_suffix:
        suffixes = (market_suffix.upper(),) + suffixes
    # Strip repeatedly so "ABC.NS.NS" cleans to "ABC" in one call
    stripped = True
    while stripped:
        stripped = False
        for suffix in suffixes:
            if cleaned.endswith(suffix) and len(cleaned) > len(suffix):
                cleaned = cleaned[: -len(suffix)]
                stripped = True
                break
    return cleaned


def to_provider_symbol(symbol: Optional[str], market_suffix: str = "") -> str:
    """
    Convert a symbol to vendor form.

    Idempotent: a symbol that already carries a known suffix is cleaned first,
    so "RELIANCE.NS" and "reliance" both map to "RELIANCE.NS".
    """
    suffix = (market_suffix or "").upper()
    cleaned = clean_symbol(symbol, suffix)
    if not cleaned:
        return ""
    if not suffix:
        return cleaned
    return f"{cleaned}{suffix}"


def normalize_symbols(symbols: Iterable[Optional[str]], market_suffix: str = "") -> list[str]:
    """
    Canonicalize a request: display form, invalid entries dropped,
    duplicates removed, first-seen order kept.
    """
    seen: set[str] = set()
    result: list[str] = []
    for raw in symbols:
        if not is_valid_symbol(raw):
            logger.warning(f"Ignoring invalid symbol format: {raw!r}")
            continue
        symbol = clean_symbol(raw, market_suffix)
        if symbol not in seen:
            seen.add(symbol)
            result.append(symbol)
    return result


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a vendor number; None for missing or malformed values."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def parse_int(value: Any) -> Optional[int]:
    number = parse_decimal(value)
    return int(number) if number is not None else None


def parse_timestamp(value: Any, default: Optional[datetime] = None) -> datetime:
    """
    Parse a vendor timestamp into an aware UTC datetime.

    Accepts unix seconds, datetime instances and the common string formats;
    anything else falls back to ``default`` (or now).
    """
    fallback = default or datetime.now(timezone.utc)
    if value is None or value == "":
        return fallback

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback

    text = str(value).strip()
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp {text!r}, using fallback")
        return fallback
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
