"""Data validation: benchmark scoring plus SEC and FRED cross-checks.

``validate_company_data`` is the report-producing entry point. It always
returns a ValidationReport, never raises: failed lookups become warnings,
and anything unexpected marks the report ``data_quality="error"`` while
keeping whatever was accumulated so far.

The regulatory and macro lookups are injected as async callables so the
engine has no opinion on where the data comes from:

    regulatory_lookup(ticker) -> RegulatoryProfile   (raises on not-found)
    macro_lookup(series_ids)  -> EconomicContext
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

import pandas as pd

from pnc_dashboard.benchmarks import (
    LOWER_IS_BETTER,
    classify_metric,
    get_company_size,
    metric_value,
)
from pnc_dashboard.errors import UpstreamError
from pnc_dashboard.metrics import round_half_up
from pnc_dashboard.models import (
    CompanyFinancials,
    EconomicContext,
    PeerComparison,
    PeerMetricComparison,
    QualityCheck,
    RegulatoryProfile,
    ReportNote,
    SourceEntry,
    ValidationEntry,
    ValidationReport,
)

log = logging.getLogger(__name__)

RegulatoryLookup = Callable[[str], Awaitable[RegulatoryProfile]]
MacroLookup = Callable[[Sequence[str]], Awaitable[EconomicContext]]

CORE_METRICS = ("combinedRatio", "roe", "lossRatio", "expenseRatio")
QUICK_CHECK_FIELDS = ("revenue", "netIncome", "combinedRatio", "roe")

RATING_SCORES = {
    "excellent": 100,
    "good": 80,
    "fair": 60,
    "poor": 40,
    "critical": 20,
    "outlier": 10,
}
SEC_VERIFIED_BONUS = 10

MACRO_SERIES = ("UNRATE", "FEDFUNDS")
HIGH_UNEMPLOYMENT_PCT = 6.0
HIGH_FED_FUNDS_PCT = 4.0

WARNING_LIMIT = 2


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _current_metrics(financial_data: Any) -> Any:
    if isinstance(financial_data, CompanyFinancials):
        return financial_data.current_metrics
    if isinstance(financial_data, Mapping) and "currentMetrics" in financial_data:
        return financial_data["currentMetrics"]
    return financial_data


def quality_tier(score: int) -> str:
    if score >= 85:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


class _ReportBuilder:
    """Mutable accumulator; frozen into a ValidationReport at the end."""

    def __init__(self, ticker: str):
        self.ticker = ticker
        self.validations: list[ValidationEntry] = []
        self.warnings: list[ReportNote] = []
        self.recommendations: list[ReportNote] = []
        self.sources: list[SourceEntry] = []
        self.total_score = 0
        self.scored = 0

    def warn(self, kind: str, message: str) -> None:
        self.warnings.append(ReportNote(type=kind, message=message))

    def recommend(self, kind: str, message: str) -> None:
        self.recommendations.append(ReportNote(type=kind, message=message))

    def build(self, score: int, quality: str) -> ValidationReport:
        return ValidationReport(
            ticker=self.ticker,
            timestamp=_now(),
            overall_score=score,
            data_quality=quality,
            validations=self.validations,
            warnings=self.warnings,
            recommendations=self.recommendations,
            sources=self.sources,
        )


# ═══════════════════════════════════════════════════════════════════════════
#  Report steps
# ═══════════════════════════════════════════════════════════════════════════

def _score_metrics(report: _ReportBuilder, metrics: Any, size: str) -> int:
    valid = 0
    for name in CORE_METRICS:
        value = metric_value(metrics, name)
        if value is None:
            report.warn("missing_data", f"Missing or invalid {name} data")
            continue
        result = classify_metric(name, value, size)
        report.validations.append(ValidationEntry(
            metric=name,
            value=value,
            rating=result.rating,
            message=result.message,
            benchmark=result.band,
            percentile=result.percentile,
        ))
        valid += 1
        if result.rating in RATING_SCORES:
            report.total_score += RATING_SCORES[result.rating]
            report.scored += 1
    return valid


def _apply_regulatory(report: _ReportBuilder, outcome: Any) -> None:
    if isinstance(outcome, RegulatoryProfile):
        report.sources.append(SourceEntry(
            name="SEC EDGAR",
            status="verified",
            data={
                "officialName": outcome.name,
                "cik": outcome.cik,
                "filingCount": outcome.filing_count,
            },
        ))
        report.total_score += SEC_VERIFIED_BONUS
    elif isinstance(outcome, UpstreamError):
        report.warn("sec_validation", f"SEC verification failed: {outcome.message}")
    elif isinstance(outcome, BaseException):
        report.warn("sec_error", f"Could not verify with SEC: {outcome}")


def _apply_macro(report: _ReportBuilder, outcome: Any) -> None:
    if isinstance(outcome, BaseException):
        report.warn("economic_data", f"Could not fetch economic context: {outcome}")
        return
    if not isinstance(outcome, EconomicContext) or not outcome.indicators:
        reason = getattr(outcome, "error", None) or "no indicators returned"
        report.warn("economic_data", f"Could not fetch economic context: {reason}")
        return

    report.sources.append(SourceEntry(
        name="FRED Economic Data",
        status="available",
        data={k: v.model_dump(by_alias=True) for k, v in outcome.indicators.items()},
    ))

    unemployment = outcome.indicators.get("UNRATE")
    if unemployment is not None and unemployment.value > HIGH_UNEMPLOYMENT_PCT:
        report.recommend(
            "economic_context",
            f"High unemployment ({unemployment.value}%) may impact insurance demand and claims",
        )
    fed_funds = outcome.indicators.get("FEDFUNDS")
    if fed_funds is not None and fed_funds.value > HIGH_FED_FUNDS_PCT:
        report.recommend(
            "economic_context",
            f"High interest rates ({fed_funds.value}%) may benefit investment income",
        )


async def _gather_lookups(
    ticker: str,
    regulatory_lookup: RegulatoryLookup | None,
    macro_lookup: MacroLookup | None,
) -> tuple[Any, Any]:
    async def _none() -> None:
        return None

    sec_call = regulatory_lookup(ticker) if regulatory_lookup else _none()
    macro_call = macro_lookup(list(MACRO_SERIES)) if macro_lookup else _none()
    sec_outcome, macro_outcome = await asyncio.gather(
        sec_call, macro_call, return_exceptions=True,
    )
    return sec_outcome, macro_outcome


# ═══════════════════════════════════════════════════════════════════════════
#  Entry points
# ═══════════════════════════════════════════════════════════════════════════

async def validate_company_data(
    ticker: str,
    financial_data: Any,
    *,
    regulatory_lookup: RegulatoryLookup | None = None,
    macro_lookup: MacroLookup | None = None,
    premium_volume: Any = None,
) -> ValidationReport:
    """Score one company's current metrics and cross-check external sources.

    Args:
        ticker: company ticker, upper-cased in the report
        financial_data: CompanyFinancials, DerivedMetrics, or a camelCase dict
            (either the metrics themselves or ``{"currentMetrics": ...}``)
        regulatory_lookup: SEC identity lookup; skipped when None
        macro_lookup: FRED indicator lookup; skipped when None
        premium_volume: annual premiums in millions, selects the band table

    Returns:
        A ValidationReport. ``overall_score`` stays within 0-100 even with
        the SEC bonus.
    """
    report = _ReportBuilder(ticker.upper())
    try:
        metrics = _current_metrics(financial_data)
        if metrics is None:
            raise ValueError("No financial metrics available for validation")

        size = get_company_size(premium_volume)
        valid_count = _score_metrics(report, metrics, size)

        sec_outcome, macro_outcome = await _gather_lookups(
            report.ticker, regulatory_lookup, macro_lookup,
        )
        if regulatory_lookup is not None:
            _apply_regulatory(report, sec_outcome)
        if macro_lookup is not None:
            _apply_macro(report, macro_outcome)

        score = 0
        if report.scored > 0:
            score = int(round_half_up(report.total_score / report.scored))
        score = max(0, min(100, score))

        if len(report.warnings) > WARNING_LIMIT:
            report.recommend(
                "data_quality",
                "Multiple data quality issues detected. Consider using alternative data sources.",
            )
        if valid_count < len(CORE_METRICS):
            report.recommend(
                "completeness",
                "Some key metrics are missing. Data may be incomplete.",
            )

        log.info(
            "Validated %s: score=%d quality=%s warnings=%d",
            report.ticker, score, quality_tier(score), len(report.warnings),
        )
        return report.build(score, quality_tier(score))

    except Exception as exc:
        log.exception("Validation failed for %s", report.ticker)
        report.warn("validation_error", f"Validation process failed: {exc}")
        return report.build(0, "error")


def quick_quality_check(metrics: Any) -> QualityCheck:
    """Completeness of the four headline metrics, for a status badge."""
    metrics = _current_metrics(metrics)
    if metrics is None:
        return QualityCheck(quality="no_data", message="No data available", color="neutral")

    missing = [f for f in QUICK_CHECK_FIELDS if metric_value(metrics, f) is None]
    if not missing:
        return QualityCheck(quality="complete", message="All key metrics available", color="success")
    if len(missing) <= 2:
        return QualityCheck(quality="partial", message="Some metrics missing", color="warning")
    return QualityCheck(quality="incomplete", message="Many metrics missing", color="danger")


def compare_to_peers(
    company: Any,
    peers: Sequence[Any],
    size: str = "large",
) -> PeerComparison:
    """Position a company's core metrics against a peer set.

    ``ranking`` is 1 + the number of peers strictly better on that metric
    (lower is better for the ratios, higher for ROE).
    """
    company = _current_metrics(company)
    if company is None or not peers:
        return PeerComparison(available=False, message="Insufficient data for peer comparison")

    comparison: dict[str, PeerMetricComparison] = {}
    for name in CORE_METRICS:
        value = metric_value(company, name)
        peer_values = pd.Series(
            [metric_value(_current_metrics(p), name) for p in peers], dtype="float64",
        ).dropna()
        if value is None or peer_values.empty:
            continue

        average = float(peer_values.mean())
        if name in LOWER_IS_BETTER:
            better = int((peer_values < value).sum())
        else:
            better = int((peer_values > value).sum())

        comparison[name] = PeerMetricComparison(
            company=value,
            peer_average=round_half_up(average, 1),
            peer_median=round_half_up(float(peer_values.median()), 1),
            percentile=classify_metric(name, value, size).percentile,
            vs_average=round_half_up(value - average, 1),
            ranking=better + 1,
        )

    return PeerComparison(
        available=True,
        comparison=comparison,
        peer_count=len(peers),
        timestamp=_now(),
    )
