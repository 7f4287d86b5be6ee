"""Data access layer: upstream fetches, caching, dedup and metric derivation.

Every value-or-failure fetch goes through the same path:

    cache hit  -> copy with source="cache"
    in flight  -> join the pending call (RequestCoordinator)
    otherwise  -> MongoDB snapshot (if configured) -> upstream -> cache

Top-level fetches raise DataFetchError / UpstreamError on failure; the
context lookups (industry, economic indicators) return partial results
instead, and the batch fetch records per-ticker errors.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from pnc_dashboard.benchmarks import get_benchmark_analysis
from pnc_dashboard.context import ServiceContext
from pnc_dashboard.errors import DataFetchError, MalformedPayloadError, UpstreamError
from pnc_dashboard.fred_client import (
    DEFAULT_ECONOMIC_SERIES,
    INSURANCE_INDUSTRY_SERIES,
    summarize_series,
)
from pnc_dashboard.metrics import calculate_insurance_metrics
from pnc_dashboard.models import (
    BatchItemError,
    BenchmarkAnalysis,
    CompanyFinancials,
    CompanyOverview,
    EconomicContext,
    EconomicIndicator,
    EnhancedFinancials,
    HistoricalMetrics,
    MarketQuote,
    RawFinancialRecord,
    RegulatoryProfile,
    ValidationReport,
    _safe,
)
from pnc_dashboard.validation import validate_company_data

log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

INDUSTRY_OBSERVATIONS = 4
INDICATOR_OBSERVATIONS = 12
INDICATOR_HISTORY = 6


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize(ticker: str) -> str:
    return ticker.strip().upper()


def premium_volume_proxy(financials: CompanyFinancials) -> float | None:
    """Revenue in millions, standing in for premium volume when sizing."""
    revenue = financials.current_metrics.revenue
    return revenue / 1e6 if revenue > 0 else None


class InsuranceDataService:
    """Fetches and derives P&C company data through a ServiceContext."""

    def __init__(self, context: ServiceContext):
        self.context = context
        self.settings = context.settings
        self.cache = context.cache
        self.coordinator = context.coordinator

    # ── Cache / snapshot plumbing ─────────────────────────────────────

    async def _load_snapshot(self, key: str, model: type[M]) -> M | None:
        store = self.context.snapshots
        if store is None:
            return None
        data = await asyncio.to_thread(store.load, key, self.settings.cache_ttl_seconds)
        if not data:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            log.debug("Ignoring unreadable snapshot %s: %s", key, exc)
            return None

    async def _save_snapshot(self, key: str, value: BaseModel) -> None:
        store = self.context.snapshots
        if store is not None:
            await asyncio.to_thread(store.save, key, value.model_dump(mode="json"))

    async def _cached(
        self,
        key: str,
        model: type[M],
        load: Callable[[], Awaitable[M]],
        persist: bool = True,
    ) -> M:
        cached = self.cache.get(key)
        if cached is not None:
            return cached.model_copy(update={"source": "cache"})

        async def produce() -> M:
            if persist:
                snapshot = await self._load_snapshot(key, model)
                if snapshot is not None:
                    log.debug("Serving %s from MongoDB snapshot", key)
                    self.cache.set(key, snapshot)
                    return snapshot.model_copy(update={"source": "snapshot"})
            value = await load()
            self.cache.set(key, value)
            if persist:
                await self._save_snapshot(key, value)
            return value

        return await self.coordinator.run_deduplicated(key, produce)

    # ── Company financials ────────────────────────────────────────────

    async def fetch_company_financials(self, ticker: str) -> CompanyFinancials:
        """Current and historical derived metrics for one ticker.

        Raises:
            DataFetchError: upstream failure or unusable statements, chained
                to the underlying cause.
        """
        ticker = _normalize(ticker)
        try:
            return await self._cached(
                f"financials_{ticker}", CompanyFinancials,
                lambda: self._load_financials(ticker),
            )
        except Exception as exc:
            log.warning("Financials fetch failed for %s: %s", ticker, exc)
            raise DataFetchError(ticker, f"Failed to fetch data for {ticker}: {exc}") from exc

    async def _load_financials(self, ticker: str) -> CompanyFinancials:
        fmp = self.context.fmp
        limit = self.settings.statement_limit
        income, balance = await asyncio.gather(
            fmp.get_income_statements(ticker, limit=limit),
            fmp.get_balance_sheets(ticker, limit=limit),
        )
        if not income or not balance:
            raise MalformedPayloadError("FMP", f"No financial data available for {ticker}")

        latest = RawFinancialRecord.model_validate(income[0])
        if latest.revenue is None or latest.revenue <= 0:
            raise MalformedPayloadError("FMP", f"Invalid revenue data for {ticker}")
        if latest.calendar_year is None or not latest.period:
            raise MalformedPayloadError("FMP", f"Missing period information for {ticker}")

        rng = self.context.rng
        current = calculate_insurance_metrics({**income[0], **balance[0]}, rng=rng)

        historical: list[HistoricalMetrics] = []
        for i, period in enumerate(income[: self.settings.history_periods]):
            merged = {**period, **(balance[i] if i < len(balance) else {})}
            metrics = calculate_insurance_metrics(merged, rng=rng)
            label = f"{period.get('period')} {period.get('calendarYear')}"
            historical.append(HistoricalMetrics(**metrics.model_dump(), label=label))
        historical.reverse()  # oldest first, for charts

        log.info(
            "Loaded %s financials: %d periods, combined ratio %.1f",
            ticker, len(historical), current.combined_ratio,
        )
        return CompanyFinancials(
            ticker=ticker,
            current_metrics=current,
            historical_metrics=historical,
            timestamp=_now(),
            source="api",
        )

    # ── Market data ───────────────────────────────────────────────────

    async def fetch_market_data(self, ticker: str) -> MarketQuote:
        """Latest quote. Raises DataFetchError on failure or a bad quote."""
        ticker = _normalize(ticker)
        try:
            return await self._cached(
                f"market_{ticker}", MarketQuote,
                lambda: self._load_market(ticker),
                persist=False,
            )
        except Exception as exc:
            log.warning("Market data fetch failed for %s: %s", ticker, exc)
            raise DataFetchError(ticker, f"Failed to fetch data for {ticker}: {exc}") from exc

    async def _load_market(self, ticker: str) -> MarketQuote:
        quotes = await self.context.fmp.get_quote(ticker)
        if not quotes:
            raise MalformedPayloadError("FMP", f"No market data available for {ticker}")
        quote = quotes[0]
        if str(quote.get("symbol", "")).upper() != ticker:
            raise MalformedPayloadError("FMP", f"Quote symbol mismatch for {ticker}")
        price = _safe(quote.get("price"))
        if price is None or price <= 0:
            raise MalformedPayloadError("FMP", f"Invalid price data for {ticker}")

        return MarketQuote(
            symbol=ticker,
            price=price,
            change=_safe(quote.get("change")) or 0.0,
            change_percent=_safe(quote.get("changesPercentage")) or 0.0,
            volume=_safe(quote.get("volume")) or 0.0,
            market_cap=_safe(quote.get("marketCap")) or 0.0,
            pe=_safe(quote.get("pe")) or 0.0,
            timestamp=_now(),
            source="api",
        )

    async def fetch_company_overview(self, ticker: str) -> CompanyOverview:
        ticker = _normalize(ticker)
        financials, market = await asyncio.gather(
            self.fetch_company_financials(ticker),
            self.fetch_market_data(ticker),
        )
        return CompanyOverview(ticker=ticker, financials=financials, market_data=market)

    async def fetch_multiple_company_financials(
        self, tickers: Sequence[str],
    ) -> list[CompanyFinancials | BatchItemError]:
        """One result per ticker, in input order; failures are recorded, not raised."""

        async def one(ticker: str) -> CompanyFinancials | BatchItemError:
            try:
                return await self.fetch_company_financials(ticker)
            except Exception as exc:
                return BatchItemError(ticker=_normalize(ticker), error=str(exc))

        return list(await asyncio.gather(*(one(t) for t in tickers)))

    # ── Macro context (FRED) ──────────────────────────────────────────

    async def _collect_series(
        self,
        named_series: dict[str, str],
        limit: int,
        history: int,
    ) -> EconomicContext:
        names = list(named_series)
        results = await asyncio.gather(
            *(self.context.fred.get_observations(named_series[n], limit=limit) for n in names),
            return_exceptions=True,
        )
        indicators: dict[str, EconomicIndicator] = {}
        errors: list[str] = []
        for name, outcome in zip(names, results):
            if isinstance(outcome, BaseException):
                log.warning("FRED series %s unavailable: %s", named_series[name], outcome)
                errors.append(str(outcome))
                continue
            indicator = summarize_series(named_series[name], outcome, history=history)
            if indicator is not None:
                indicators[name] = indicator
        return EconomicContext(
            indicators=indicators,
            error="; ".join(errors) or None,
            timestamp=_now(),
            source="api",
        )

    async def _context_lookup(self, key: str, named_series: dict[str, str], limit: int, history: int) -> EconomicContext:
        cached = self.cache.get(key)
        if cached is not None:
            return cached.model_copy(update={"source": "cache"})
        try:
            result = await self.coordinator.run_deduplicated(
                key, lambda: self._collect_series(named_series, limit, history),
            )
        except Exception as exc:
            log.warning("Economic context lookup failed (%s): %s", key, exc)
            return EconomicContext(error=str(exc), timestamp=_now())
        # Partial results are returned but only complete ones are cached
        if result.indicators and result.error is None:
            self.cache.set(key, result)
        return result

    async def fetch_industry_context(self) -> EconomicContext:
        """Insurance-relevant FRED series keyed by friendly name. Never raises."""
        return await self._context_lookup(
            "industry_context", INSURANCE_INDUSTRY_SERIES,
            INDUSTRY_OBSERVATIONS, INDUSTRY_OBSERVATIONS,
        )

    async def fetch_economic_indicators(
        self, series_ids: Sequence[str] = DEFAULT_ECONOMIC_SERIES,
    ) -> EconomicContext:
        """Latest value and short history per series id. Never raises."""
        ids = [s.strip().upper() for s in series_ids]
        return await self._context_lookup(
            f"fred_indicators_{'_'.join(ids)}", {s: s for s in ids},
            INDICATOR_OBSERVATIONS, INDICATOR_HISTORY,
        )

    # ── Regulatory (SEC EDGAR) ────────────────────────────────────────

    async def fetch_sec_filings(self, ticker: str) -> RegulatoryProfile:
        """SEC identity and filing cadence. Raises UpstreamError if not found."""
        ticker = _normalize(ticker)

        async def load() -> RegulatoryProfile:
            try:
                return await asyncio.to_thread(self.context.sec.get_regulatory_profile, ticker)
            except UpstreamError:
                raise
            except Exception as exc:
                raise UpstreamError("SEC EDGAR", str(exc)) from exc

        return await self._cached(f"sec_filings_{ticker}", RegulatoryProfile, load, persist=False)

    # ── Validation and benchmarks ─────────────────────────────────────

    async def validate(
        self,
        ticker: str,
        financials: CompanyFinancials | None = None,
    ) -> ValidationReport:
        """Validation report for a ticker; fetches financials when not given."""
        ticker = _normalize(ticker)
        if financials is None:
            financials = await self.fetch_company_financials(ticker)
        return await validate_company_data(
            ticker,
            financials,
            regulatory_lookup=self.fetch_sec_filings,
            macro_lookup=self.fetch_economic_indicators,
            premium_volume=premium_volume_proxy(financials),
        )

    async def fetch_benchmark_analysis(self, ticker: str) -> BenchmarkAnalysis:
        financials = await self.fetch_company_financials(ticker)
        return get_benchmark_analysis(
            financials.ticker,
            financials.current_metrics,
            premium_volume=premium_volume_proxy(financials),
        )

    async def fetch_enhanced_financial_data(self, ticker: str) -> EnhancedFinancials:
        """Financials, macro context and a validation report in one result."""
        ticker = _normalize(ticker)
        financials, economic = await asyncio.gather(
            self.fetch_company_financials(ticker),
            self.fetch_economic_indicators(),
        )
        validation = await self.validate(ticker, financials)
        return EnhancedFinancials(
            financials=financials,
            economic_context=economic,
            validation=validation,
            timestamp=_now(),
        )
