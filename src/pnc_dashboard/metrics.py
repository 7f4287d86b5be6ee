"""P&C insurance metrics derived from a single financial-statement period.

Standard statements (FMP income statement + balance sheet) do not break out
premiums, losses or underwriting expenses, so the insurance-specific ratios
here are estimates:

  expense ratio   — operating expenses / revenue, clipped to 15-35%
  combined ratio  — per-ticker plausible range, else a band picked by profit
                    margin, with a bounded random offset inside the range
  loss ratio      — combined estimate minus expense ratio, floored at 50%
  investment yield, float, reserves — fixed-share approximations of assets
                    and net income, not GAAP figures

The combined-ratio table is a placeholder for a real industry data source.
Callers that have a reported combined ratio should pass it in; otherwise
the random offset comes from ``rng`` so tests can seed it.

Everything is computed fresh per call and nothing here raises: missing or
invalid inputs come out as zeros or default bands.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pnc_dashboard.models import DerivedMetrics, RawFinancialRecord

log = logging.getLogger(__name__)

EXPENSE_RATIO_FLOOR = 15.0
EXPENSE_RATIO_CEILING = 35.0
LOSS_RATIO_FLOOR = 50.0

# Net income share assumed to come from the investment portfolio when
# investment income is not reported separately.
INVESTMENT_INCOME_SHARE = 0.3
DEFAULT_INVESTMENT_YIELD = 2.5
FLOAT_ASSET_SHARE = 0.7
RESERVE_ASSET_SHARE = 0.6

# ticker -> (base combined ratio, max random offset)
COMBINED_RATIO_FIXTURES: dict[str, tuple[float, float]] = {
    "PGR": (92.0, 6.0),   # Progressive: disciplined personal auto, 92-98
    "TRV": (95.0, 6.0),   # Travelers: commercial focus, 95-101
    "ALL": (96.0, 8.0),   # Allstate: volatile cat exposure, 96-104
    "CB": (88.0, 7.0),    # Chubb: premium commercial, 88-95
    "AIG": (98.0, 8.0),   # AIG: large commercial, 98-106
}

# (profit margin strictly above, base, max offset); first match wins
PROFITABILITY_BANDS: tuple[tuple[float, float, float], ...] = (
    (10.0, 90.0, 8.0),
    (5.0, 95.0, 8.0),
    (0.0, 98.0, 10.0),
)
UNPROFITABLE_BAND: tuple[float, float] = (105.0, 15.0)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with ties going up (0.25 -> 0.3, 97.5 -> 98.0).

    Builtin round() sends ties to the even digit instead.
    """
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def _pct(numerator: float, denominator: float) -> float:
    return numerator / denominator * 100 if denominator > 0 else 0.0


def _coerce_record(data: RawFinancialRecord | Mapping[str, Any] | None) -> RawFinancialRecord:
    if isinstance(data, RawFinancialRecord):
        return data
    if not isinstance(data, Mapping):
        return RawFinancialRecord()
    try:
        return RawFinancialRecord.model_validate(dict(data))
    except ValidationError as exc:
        log.warning("Unusable financial record, computing from zeros: %s", exc)
        return RawFinancialRecord()


def estimate_combined_ratio(
    symbol: str | None,
    profit_margin: float,
    rng: random.Random | None = None,
) -> float:
    """Pick a plausible combined ratio for the ticker or its profitability band."""
    source = rng if rng is not None else random
    fixture = COMBINED_RATIO_FIXTURES.get((symbol or "").upper())
    if fixture is not None:
        base, spread = fixture
        return base + source.random() * spread

    for above, base, spread in PROFITABILITY_BANDS:
        if profit_margin > above:
            return base + source.random() * spread
    base, spread = UNPROFITABLE_BAND
    return base + source.random() * spread


def calculate_insurance_metrics(
    data: RawFinancialRecord | Mapping[str, Any] | None,
    *,
    rng: random.Random | None = None,
    combined_ratio: float | None = None,
) -> DerivedMetrics:
    """Derive the full P&C metric set for one statement period.

    Args:
        data: merged income statement + balance sheet record (model or the
            raw camelCase dict from FMP)
        rng: randomness source for the combined-ratio estimate
        combined_ratio: a reported combined ratio; skips the estimate

    Returns:
        A new DerivedMetrics. ``combined_ratio == loss_ratio + expense_ratio``
        and ``underwriting_profit_margin == 100 - combined_ratio`` hold on
        the rounded values.
    """
    rec = _coerce_record(data)

    revenue = rec.revenue or 0.0
    net_income = rec.net_income or 0.0
    assets = rec.total_assets or 0.0
    equity = rec.total_stockholders_equity or 0.0
    debt = rec.total_debt or 0.0
    shares = rec.weighted_average_shares_outstanding or 0.0
    if shares <= 0:
        shares = 1.0
    operating_expenses = rec.operating_expenses
    if operating_expenses is None:
        operating_expenses = rec.selling_general_and_administrative_expenses or 0.0

    profit_margin = _pct(net_income, revenue)
    roe = _pct(net_income, equity)
    roa = _pct(net_income, assets)
    book_value_per_share = equity / shares if equity > 0 else 0.0
    debt_to_equity = _pct(debt, equity)

    base_expense_ratio = _pct(operating_expenses, revenue)
    expense_ratio = min(max(base_expense_ratio, EXPENSE_RATIO_FLOOR), EXPENSE_RATIO_CEILING)

    if combined_ratio is None:
        combined_estimate = estimate_combined_ratio(rec.symbol, profit_margin, rng)
    else:
        combined_estimate = combined_ratio

    expense_ratio = round_half_up(expense_ratio, 1)
    loss_ratio = round_half_up(max(LOSS_RATIO_FLOOR, combined_estimate - expense_ratio), 1)
    # Recombined from the rounded parts so the identity survives rounding
    # and the loss-ratio floor.
    combined = round_half_up(loss_ratio + expense_ratio, 1)
    underwriting_profit_margin = round_half_up(100 - combined, 1)

    if assets > 0:
        investment_income = rec.investment_income
        if investment_income is None:
            investment_income = net_income * INVESTMENT_INCOME_SHARE
        investment_yield = investment_income / assets * 100
    else:
        investment_yield = DEFAULT_INVESTMENT_YIELD

    float_per_share = assets * FLOAT_ASSET_SHARE / shares
    reserve_ratio = assets * RESERVE_ASSET_SHARE / revenue if revenue > 0 else 0.0

    return DerivedMetrics(
        revenue=revenue,
        net_income=net_income,
        total_assets=assets,
        total_equity=equity,
        shares_outstanding=shares,
        profit_margin=round_half_up(profit_margin, 1),
        roe=round_half_up(roe, 1),
        roa=round_half_up(roa, 1),
        book_value_per_share=round_half_up(book_value_per_share, 2),
        # No intangibles in the FMP fields we pull; same as book value.
        tangible_book_value=round_half_up(book_value_per_share, 2),
        debt_to_equity=round_half_up(debt_to_equity, 1),
        expense_ratio=expense_ratio,
        loss_ratio=loss_ratio,
        combined_ratio=combined,
        underwriting_profit_margin=underwriting_profit_margin,
        investment_yield=round_half_up(investment_yield, 1),
        float_per_share=round_half_up(float_per_share, 2),
        reserve_ratio=round_half_up(reserve_ratio, 2),
        year=rec.calendar_year,
        period=rec.period,
        symbol=rec.symbol,
    )
