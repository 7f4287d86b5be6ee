"""Display formatting for financial figures (prompts, API summaries)."""

from __future__ import annotations

import math
from typing import Any

from pnc_dashboard.models import DerivedMetrics

NA = "N/A"


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


def format_currency(amount: Any) -> str:
    """``1234567`` -> ``"$1,234,567"``; whole dollars, sign before the symbol."""
    v = _number(amount)
    if v is None:
        return NA
    sign = "-" if v < 0 else ""
    return f"{sign}${abs(v):,.0f}"


def format_number(value: Any, decimals: int = 2) -> str:
    v = _number(value)
    if v is None:
        return NA
    text = f"{v:,.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_percentage(value: Any, decimals: int = 1) -> str:
    """Fractions are scaled to percent; values above 1 are taken as percent already.

    ``0.15`` -> ``"15.0%"`` and ``15`` -> ``"15.0%"``.
    """
    v = _number(value)
    if v is None:
        return NA
    pct = v if v > 1 else v * 100
    return f"{pct:.{decimals}f}%"


def format_large_number(value: Any, decimals: int = 1) -> str:
    v = _number(value)
    if v is None:
        return NA
    magnitude = abs(v)
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if magnitude >= threshold:
            return f"{v / threshold:.{decimals}f}{suffix}"
    return format_number(v)


def format_market_cap(market_cap: Any) -> str:
    """``1.5e9`` -> ``"$1.5B"``; missing or non-positive -> ``"N/A"``."""
    v = _number(market_cap)
    if v is None or v <= 0:
        return NA
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M")):
        if v >= threshold:
            return f"${v / threshold:.1f}{suffix}"
    return f"${format_number(v)}"


def _dollars(value: float) -> str:
    text = format_large_number(value)
    if text.startswith("-"):
        return f"-${text[1:]}"
    return f"${text}"


def summarize_financials(metrics: DerivedMetrics) -> dict[str, str]:
    """Headline figures as display strings, keyed like the metrics.

    Only the ratios that never fall to 1% or below go through
    ``format_percentage``; smaller percents would be read as fractions.
    """
    return {
        "revenue": _dollars(metrics.revenue),
        "netIncome": _dollars(metrics.net_income),
        "totalAssets": _dollars(metrics.total_assets),
        "bookValuePerShare": format_currency(metrics.book_value_per_share),
        "combinedRatio": format_percentage(metrics.combined_ratio),
        "lossRatio": format_percentage(metrics.loss_ratio),
        "expenseRatio": format_percentage(metrics.expense_ratio),
    }
