"""
Derived-field helpers shared by the upstream adapters and the aggregator.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Set

from ..api.schemas import Derivative, ImpactLevel


def _group_number(value: float) -> str:
    """Thousands-grouped number with at most three fraction digits ("12,345.678")."""
    text = f"{value:,.3f}".rstrip('0').rstrip('.')
    return text if text not in ('', '-0') else '0'


def format_compact(value: Optional[float]) -> str:
    """Compact dollar string: $1.23T, $4.56B, $7.8M, or $999 below a million."""
    n = float(value or 0)
    if n >= 1e12:
        return f"${n / 1e12:.2f}T"
    if n >= 1e9:
        return f"${n / 1e9:.2f}B"
    if n >= 1e6:
        return f"${n / 1e6:.1f}M"
    return f"${_group_number(n)}"


def format_price(value: Optional[float]) -> str:
    """Dollar price; sub-dollar prices keep six decimals so they never read $0.00."""
    p = float(value or 0)
    if p >= 1:
        return f"${p:,.2f}"
    return f"${p:.6f}"


def to_float(value: Any, default: float = 0.0) -> float:
    """Parse an upstream numeric field, falling back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def impact_from_score(score: Any) -> Optional[ImpactLevel]:
    """
    Bucket a confidence/percentage score into an impact level.

    Lower bounds are inclusive: 70 is high, 40 is medium. A missing or
    non-numeric score has no impact.
    """
    if score is None or isinstance(score, bool):
        return None
    try:
        pct = float(score)
    except (TypeError, ValueError):
        return None
    if math.isnan(pct):
        return None

    if pct >= 70:
        return ImpactLevel.HIGH
    if pct >= 40:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


_ISO_DATE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
_CLOCK_TIME = re.compile(r"(\d{1,2}):(\d{2})")
_DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%d %b %Y", "%d %B %Y", "%d/%m/%Y", "%Y/%m/%d")


def normalize_event_date(value: Any) -> Optional[str]:
    """Coerce an upstream date into YYYY-MM-DD, or None when it cannot be read."""
    text = str(value or '').strip()
    if not text:
        return None

    match = _ISO_DATE.search(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def normalize_event_time(value: Any) -> Optional[str]:
    """Coerce an upstream time into zero-padded HH:MM; all-day or unknown times are None."""
    match = _CLOCK_TIME.search(str(value or ''))
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def normalize_impact(value: Any) -> Optional[ImpactLevel]:
    """Map an impact label ("High", "moderate", "low volatility") onto an ImpactLevel."""
    label = str(value or '').strip().lower()
    if not label:
        return None
    if 'high' in label:
        return ImpactLevel.HIGH
    if 'medium' in label or 'moderate' in label:
        return ImpactLevel.MEDIUM
    if 'low' in label:
        return ImpactLevel.LOW
    return None


def optional_text(value: Any, limit: int = 200) -> Optional[str]:
    """Stringify an optional upstream value; blanks become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text[:limit] if text else None


def base_symbol(pair: Any) -> str:
    """Upper-cased base asset of a slash-separated pair: "btc/usdt" is "BTC"."""
    return str(pair or '').split('/')[0].strip().upper()


def dedupe_derivatives(
    derivatives: Iterable[Derivative],
    tracked: Optional[Iterable[str]] = None
) -> List[Derivative]:
    """Keep the first derivative per base symbol, in upstream order."""
    allowed = {s.upper() for s in tracked} if tracked is not None else None
    seen: Set[str] = set()
    unique = []
    for derivative in derivatives:
        symbol = derivative.symbol
        if not symbol or symbol in seen:
            continue
        if allowed is not None and symbol not in allowed:
            continue
        seen.add(symbol)
        unique.append(derivative)
    return unique
