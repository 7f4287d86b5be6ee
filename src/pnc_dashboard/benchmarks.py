"""P&C industry benchmarks, size classes and peer groups.

Band tables follow NAIC / AM Best / S&P Global 2024 aggregates. Each metric
has one table per company size class; smaller carriers get wider, shifted
bands. Bands are checked in rating order (excellent -> critical) and the
first band whose closed [min, max] range contains the value wins, so a
value on a shared edge takes the better rating.

Metric names are the camelCase keys used across the dashboard
(``combinedRatio``, ``roe``, ``lossRatio``, ``expenseRatio``); snake_case
spellings are accepted too.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic.alias_generators import to_camel, to_snake

from pnc_dashboard.models import (
    BenchmarkAnalysis,
    BenchmarkBand,
    BenchmarkFinding,
    BenchmarkResult,
    PeerGroup,
)

RATING_ORDER = ("excellent", "good", "fair", "poor", "critical")
LOWER_IS_BETTER = frozenset({"combinedRatio", "lossRatio", "expenseRatio"})

OUTLIER_BEST_PERCENTILE = 95
OUTLIER_WORST_PERCENTILE = 5
NEUTRAL_PERCENTILE = 50

# Premium volume thresholds, in millions
LARGE_PREMIUM_MIN = 10_000
MEDIUM_PREMIUM_MIN = 1_000

_PERCENTILES = {"excellent": 90, "good": 75, "fair": 50, "poor": 25, "critical": 10}

_DESCRIPTIONS = {
    "combinedRatio": {
        "excellent": "Top quartile performance",
        "good": "Above average performance",
        "fair": "Industry average",
        "poor": "Below average performance",
        "critical": "Poor underwriting performance",
    },
    "roe": {
        "excellent": "Exceptional returns",
        "good": "Strong returns",
        "fair": "Adequate returns",
        "poor": "Weak returns",
        "critical": "Poor/negative returns",
    },
    "lossRatio": {
        "excellent": "Superior underwriting",
        "good": "Good underwriting",
        "fair": "Average underwriting",
        "poor": "Weak underwriting",
        "critical": "Poor underwriting",
    },
    "expenseRatio": {
        "excellent": "Highly efficient",
        "good": "Efficient operations",
        "fair": "Average efficiency",
        "poor": "Inefficient operations",
        "critical": "Very inefficient",
    },
}

# metric -> size -> (min, max) per rating, in RATING_ORDER
_RANGES: dict[str, dict[str, tuple[tuple[float, float], ...]]] = {
    "combinedRatio": {
        "large": ((88, 95), (95, 100), (100, 105), (105, 110), (110, 120)),
        "medium": ((90, 97), (97, 102), (102, 107), (107, 115), (115, 125)),
        "small": ((92, 99), (99, 105), (105, 110), (110, 118), (118, 130)),
    },
    "roe": {
        "large": ((15, 25), (12, 15), (8, 12), (5, 8), (0, 5)),
        "medium": ((14, 22), (11, 14), (7, 11), (4, 7), (-2, 4)),
        "small": ((13, 20), (10, 13), (6, 10), (3, 6), (-5, 3)),
    },
    "lossRatio": {
        "large": ((58, 68), (68, 75), (75, 82), (82, 90), (90, 100)),
        "medium": ((60, 70), (70, 77), (77, 85), (85, 92), (92, 105)),
        "small": ((62, 72), (72, 80), (80, 88), (88, 95), (95, 110)),
    },
    "expenseRatio": {
        "large": ((20, 25), (25, 30), (30, 35), (35, 40), (40, 50)),
        "medium": ((20, 26), (26, 31), (31, 36), (36, 42), (42, 52)),
        "small": ((20, 27), (27, 32), (32, 38), (38, 45), (45, 55)),
    },
}


def _build_table() -> dict[str, dict[str, dict[str, BenchmarkBand]]]:
    table: dict[str, dict[str, dict[str, BenchmarkBand]]] = {}
    for metric, sizes in _RANGES.items():
        table[metric] = {}
        for size, ranges in sizes.items():
            table[metric][size] = {
                rating: BenchmarkBand(
                    min=lo,
                    max=hi,
                    percentile=_PERCENTILES[rating],
                    description=_DESCRIPTIONS[metric][rating],
                )
                for rating, (lo, hi) in zip(RATING_ORDER, ranges)
            }
    return table


INDUSTRY_BENCHMARKS_2024 = _build_table()

PEER_GROUPS: dict[str, PeerGroup] = {
    "largeDiversified": PeerGroup(
        key="largeDiversified",
        name="Large Diversified P&C",
        companies=["TRV", "ALL", "AIG", "CB", "HIG"],
        description="Multi-line P&C insurers with >$10B annual premiums",
    ),
    "personalLines": PeerGroup(
        key="personalLines",
        name="Personal Lines Specialists",
        companies=["PGR", "GEICO", "USAA"],
        description="Auto and homeowners insurance specialists",
    ),
    "commercialLines": PeerGroup(
        key="commercialLines",
        name="Commercial Lines Specialists",
        companies=["WRB", "ACGL", "EG", "RLI"],
        description="Commercial and specialty insurance focus",
    ),
    "regional": PeerGroup(
        key="regional",
        name="Regional & Specialty",
        companies=["CINF", "AFG", "KMPR"],
        description="Regional and specialty insurance companies",
    ),
}
DEFAULT_PEER_GROUP = "largeDiversified"

INDUSTRY_TRENDS: dict[str, dict[str, Any]] = {
    "combinedRatio": {
        "history": {2020: 101.2, 2021: 99.8, 2022: 103.1, 2023: 100.5, 2024: 98.9},
        "trend": "improving",
        "note": "Industry showing improved underwriting discipline",
    },
    "roe": {
        "history": {2020: 6.2, 2021: 11.8, 2022: 8.4, 2023: 10.1, 2024: 12.3},
        "trend": "improving",
        "note": "Strong investment returns and rate increases driving ROE",
    },
    "lossRatio": {
        "history": {2020: 72.5, 2021: 68.9, 2022: 75.2, 2023: 71.8, 2024: 69.4},
        "trend": "improving",
        "note": "Reduced catastrophe losses and better pricing",
    },
}


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════

def canonical_metric(name: str) -> str:
    """``combined_ratio`` -> ``combinedRatio``; camelCase passes through."""
    return to_camel(name) if "_" in name else name


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


def metric_value(metrics: Any, name: str) -> float | None:
    """Read a metric from DerivedMetrics or a camel/snake-keyed mapping."""
    camel = canonical_metric(name)
    if isinstance(metrics, Mapping):
        raw = metrics.get(camel)
        if raw is None:
            raw = metrics.get(to_snake(camel))
    else:
        raw = getattr(metrics, to_snake(camel), None)
    return _numeric(raw)


# ═══════════════════════════════════════════════════════════════════════════
#  Size classes and peer groups
# ═══════════════════════════════════════════════════════════════════════════

def get_company_size(premium_volume: Any) -> str:
    """Size class from annual premium volume in millions.

    Anything that is not a finite number falls back to ``"medium"``.
    """
    volume = _numeric(premium_volume)
    if volume is None:
        return "medium"
    if volume >= LARGE_PREMIUM_MIN:
        return "large"
    if volume >= MEDIUM_PREMIUM_MIN:
        return "medium"
    return "small"


def get_peer_group(ticker: str) -> PeerGroup:
    """Peer group containing the ticker, else large diversified."""
    ticker = ticker.upper()
    for group in PEER_GROUPS.values():
        if ticker in group.companies:
            return group
    return PEER_GROUPS[DEFAULT_PEER_GROUP]


def get_industry_trends() -> dict[str, dict[str, Any]]:
    return {k: {**v, "history": dict(v["history"])} for k, v in INDUSTRY_TRENDS.items()}


# ═══════════════════════════════════════════════════════════════════════════
#  Classification
# ═══════════════════════════════════════════════════════════════════════════

def classify_metric(metric: str, value: Any, size: str = "large") -> BenchmarkResult:
    """Rate a metric value against the size class's industry bands.

    Values outside every band are rated ``"outlier"`` at percentile 95 when
    past the excellent edge and 5 when past the critical edge. Unknown
    metrics, unknown sizes and non-numeric values come back ``"unknown"``
    at percentile 50.
    """
    name = canonical_metric(metric)
    number = _numeric(value)
    bands = INDUSTRY_BENCHMARKS_2024.get(name, {}).get(size)
    if bands is None or number is None:
        return BenchmarkResult(
            metric=name,
            value=number,
            rating="unknown",
            percentile=NEUTRAL_PERCENTILE,
            message="Unable to validate metric",
        )

    for rating in RATING_ORDER:
        band = bands[rating]
        if band.min <= number <= band.max:
            return BenchmarkResult(
                metric=name,
                value=number,
                rating=rating,
                percentile=band.percentile,
                band=band,
                message=band.description,
            )

    best, worst = bands["excellent"], bands["critical"]
    if name in LOWER_IS_BETTER:
        beyond_best = number < best.min
        beyond_worst = number > worst.max
    else:
        beyond_best = number > best.max
        beyond_worst = number < worst.min

    if beyond_best:
        percentile = OUTLIER_BEST_PERCENTILE
    elif beyond_worst:
        percentile = OUTLIER_WORST_PERCENTILE
    else:
        percentile = NEUTRAL_PERCENTILE
    return BenchmarkResult(
        metric=name,
        value=number,
        rating="outlier",
        percentile=percentile,
        message="Value outside typical industry range",
    )


def calculate_industry_percentile(metric: str, value: Any, size: str = "large") -> int:
    return classify_metric(metric, value, size).percentile


def get_benchmark_analysis(
    ticker: str,
    metrics: Any,
    premium_volume: Any = None,
) -> BenchmarkAnalysis:
    """Rate combined ratio, ROE and loss ratio against the company's size class."""
    size = get_company_size(premium_volume)
    results: dict[str, BenchmarkResult] = {}
    strengths: list[BenchmarkFinding] = []
    weaknesses: list[BenchmarkFinding] = []

    for name in ("combinedRatio", "roe", "lossRatio"):
        value = metric_value(metrics, name)
        if value is None:
            continue
        result = classify_metric(name, value, size)
        results[name] = result
        if result.percentile >= 75:
            strengths.append(BenchmarkFinding(
                metric=name,
                percentile=result.percentile,
                message=f"{name} in top quartile ({result.percentile}th percentile)",
            ))
        elif result.percentile <= 25:
            weaknesses.append(BenchmarkFinding(
                metric=name,
                percentile=result.percentile,
                message=f"{name} in bottom quartile ({result.percentile}th percentile)",
            ))

    overall = "fair"
    if results:
        avg = sum(r.percentile for r in results.values()) / len(results)
        if avg >= 80:
            overall = "excellent"
        elif avg >= 60:
            overall = "good"
        elif avg >= 40:
            overall = "fair"
        elif avg >= 20:
            overall = "poor"
        else:
            overall = "critical"

    return BenchmarkAnalysis(
        ticker=ticker.upper(),
        company_size=size,
        peer_group=get_peer_group(ticker),
        metrics=results,
        overall_rating=overall,
        strengths=strengths,
        weaknesses=weaknesses,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
