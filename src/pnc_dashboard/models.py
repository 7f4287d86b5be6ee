"""Pydantic models for provider payloads, derived metrics and reports.

Field names are snake_case in Python; every model serializes with the
camelCase aliases the dashboard frontend and the FMP API use
(``model_dump(by_alias=True)``).
"""

from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _safe(v: Any) -> float | None:
    """Convert a value to float, returning None for invalid/missing values."""
    if v is None or isinstance(v, bool):
        return None
    if hasattr(v, "item"):
        v = v.item()
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------

_NUMERIC_FIELDS = (
    "revenue",
    "net_income",
    "total_assets",
    "total_stockholders_equity",
    "weighted_average_shares_outstanding",
    "selling_general_and_administrative_expenses",
    "operating_expenses",
    "investment_income",
    "total_debt",
)


class RawFinancialRecord(_CamelModel):
    """One reporting period for one company, as merged from FMP statements.

    Every numeric field is optional. Values the provider sends as garbage
    (strings, NaN) are dropped to None here so the calculator only has to
    deal with absence.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str | None = None
    revenue: float | None = None
    net_income: float | None = None
    total_assets: float | None = None
    total_stockholders_equity: float | None = None
    weighted_average_shares_outstanding: float | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "weightedAverageShsOut",
            "weightedAverageSharesOutstanding",
            "weighted_average_shares_outstanding",
        ),
    )
    selling_general_and_administrative_expenses: float | None = None
    operating_expenses: float | None = None
    investment_income: float | None = None
    total_debt: float | None = None
    calendar_year: int | None = None
    period: str | None = None

    @field_validator(*_NUMERIC_FIELDS, mode="before")
    @classmethod
    def _coerce_numeric(cls, v: Any) -> float | None:
        return _safe(v)

    @field_validator("calendar_year", mode="before")
    @classmethod
    def _coerce_year(cls, v: Any) -> int | None:
        f = _safe(v)
        return int(f) if f is not None else None

    @field_validator("symbol", "period", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None


class MarketQuote(_CamelModel):
    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    market_cap: float = 0.0
    pe: float = 0.0
    timestamp: str
    source: str = "api"


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

class DerivedMetrics(_CamelModel):
    """P&C metrics for one period. Percentages are in percent units."""

    model_config = ConfigDict(frozen=True)

    revenue: float
    net_income: float
    total_assets: float
    total_equity: float
    shares_outstanding: float

    profit_margin: float
    roe: float
    roa: float
    book_value_per_share: float
    tangible_book_value: float
    debt_to_equity: float

    expense_ratio: float
    loss_ratio: float
    combined_ratio: float
    underwriting_profit_margin: float
    investment_yield: float

    float_per_share: float
    reserve_ratio: float

    year: int | None = None
    period: str | None = None
    symbol: str | None = None


class HistoricalMetrics(DerivedMetrics):
    """Derived metrics for a past period, labelled e.g. ``"FY 2023"``."""

    label: str


class CompanyFinancials(_CamelModel):
    ticker: str
    current_metrics: DerivedMetrics
    historical_metrics: list[HistoricalMetrics] = []
    timestamp: str
    source: str = "api"


class BatchItemError(_CamelModel):
    """Per-ticker failure inside a multi-company fetch."""
    ticker: str
    error: str
    current_metrics: None = None


class CompanyOverview(_CamelModel):
    ticker: str
    financials: CompanyFinancials
    market_data: MarketQuote


# ---------------------------------------------------------------------------
# Benchmarks
# ---------------------------------------------------------------------------

Rating = Literal["excellent", "good", "fair", "poor", "critical", "outlier", "unknown"]
SizeClass = Literal["large", "medium", "small"]


class BenchmarkBand(_CamelModel):
    min: float
    max: float
    percentile: int
    description: str = ""


class BenchmarkResult(_CamelModel):
    metric: str
    value: float | None
    rating: Rating
    percentile: int
    band: BenchmarkBand | None = None
    message: str = ""


class PeerGroup(_CamelModel):
    key: str
    name: str
    companies: list[str]
    description: str


class BenchmarkFinding(_CamelModel):
    metric: str
    percentile: int
    message: str


class BenchmarkAnalysis(_CamelModel):
    ticker: str
    company_size: SizeClass
    peer_group: PeerGroup
    metrics: dict[str, BenchmarkResult] = {}
    overall_rating: Rating = "fair"
    strengths: list[BenchmarkFinding] = []
    weaknesses: list[BenchmarkFinding] = []
    timestamp: str


# ---------------------------------------------------------------------------
# Validation report
# ---------------------------------------------------------------------------

DataQuality = Literal["excellent", "good", "fair", "poor", "error", "unknown"]


class ValidationEntry(_CamelModel):
    metric: str
    value: float
    rating: Rating
    message: str
    benchmark: BenchmarkBand | None = None
    percentile: int | None = None


class ReportNote(_CamelModel):
    """A warning or recommendation line in a validation report."""
    type: str
    message: str


class SourceEntry(_CamelModel):
    name: str
    status: str
    data: dict[str, Any] | None = None


class ValidationReport(_CamelModel):
    model_config = ConfigDict(frozen=True)

    ticker: str
    timestamp: str
    overall_score: int = 0
    data_quality: DataQuality = "unknown"
    validations: list[ValidationEntry] = []
    warnings: list[ReportNote] = []
    recommendations: list[ReportNote] = []
    sources: list[SourceEntry] = []


class QualityCheck(_CamelModel):
    quality: Literal["complete", "partial", "incomplete", "no_data"]
    message: str
    color: Literal["success", "warning", "danger", "neutral"]


class PeerMetricComparison(_CamelModel):
    company: float
    peer_average: float
    peer_median: float
    percentile: int
    vs_average: float
    ranking: int


class PeerComparison(_CamelModel):
    available: bool
    message: str = ""
    comparison: dict[str, PeerMetricComparison] = {}
    peer_count: int = 0
    timestamp: str | None = None


# ---------------------------------------------------------------------------
# External context (SEC EDGAR, FRED)
# ---------------------------------------------------------------------------

FilingFrequency = Literal["frequent", "regular", "periodic", "infrequent", "insufficient_data"]


class RegulatoryProfile(_CamelModel):
    cik: str
    name: str
    ticker: str
    entity_type: str | None = None
    sic: str | None = None
    sic_description: str | None = None
    filing_count: int = 0
    recent_10k_index: int = -1
    recent_10q_index: int = -1
    recent_8k_index: int = -1
    last_filing_date: str | None = None
    filing_frequency: FilingFrequency = "insufficient_data"
    timestamp: str
    source: str = "api"


class Observation(_CamelModel):
    date: str
    value: float | None


class EconomicIndicator(_CamelModel):
    series_id: str
    value: float
    date: str | None = None
    trend: Literal["up", "down", "stable"] = "stable"
    historical: list[Observation] = []


class EconomicContext(_CamelModel):
    """Latest macro readings keyed by FRED series id (or friendly name)."""
    indicators: dict[str, EconomicIndicator] = {}
    error: str | None = None
    timestamp: str
    source: str = "api"


class EnhancedFinancials(_CamelModel):
    financials: CompanyFinancials
    economic_context: EconomicContext
    validation: ValidationReport
    timestamp: str


# ---------------------------------------------------------------------------
# Company catalog
# ---------------------------------------------------------------------------

class CompanyProfile(_CamelModel):
    ticker: str
    name: str
    market_cap: str
    segment: str
    is_top5: bool = False
