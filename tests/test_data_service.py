"""Tests for InsuranceDataService against in-memory upstream fakes."""

import asyncio

import pytest

from pnc_dashboard.data_service import InsuranceDataService, premium_volume_proxy
from pnc_dashboard.errors import DataFetchError, UpstreamError
from pnc_dashboard.models import BatchItemError, CompanyFinancials

from conftest import balance_sheet, income_statement


class FakeSnapshots:
    def __init__(self):
        self.docs = {}

    def save(self, key, data):
        self.docs[key] = data
        return True

    def load(self, key, max_age_seconds):
        return self.docs.get(key)

    def close(self):
        pass


@pytest.fixture
def service(context):
    return InsuranceDataService(context)


# ═══════════════════════════════════════════════════════════════════════════
#  Financials
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_financials_with_history_oldest_first(service):
    result = await service.fetch_company_financials("trv")
    assert isinstance(result, CompanyFinancials)
    assert result.ticker == "TRV"
    assert result.source == "api"
    assert result.current_metrics.year == 2024
    assert [h.label for h in result.historical_metrics] == [
        "FY 2021", "FY 2022", "FY 2023", "FY 2024",
    ]


@pytest.mark.asyncio
async def test_second_fetch_served_from_cache(service, context):
    await service.fetch_company_financials("TRV")
    again = await service.fetch_company_financials("TRV")
    assert again.source == "cache"
    assert context.fmp.count("income", "TRV") == 1


@pytest.mark.asyncio
async def test_cache_expires_after_ttl(service, context, clock):
    await service.fetch_company_financials("TRV")
    clock.advance(context.settings.cache_ttl_seconds + 1)
    fresh = await service.fetch_company_financials("TRV")
    assert fresh.source == "api"
    assert context.fmp.count("income", "TRV") == 2


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_upstream_call(service, context):
    a, b, c = await asyncio.gather(
        service.fetch_company_financials("TRV"),
        service.fetch_company_financials("TRV"),
        service.fetch_company_financials(" trv "),
    )
    assert context.fmp.count("income", "TRV") == 1
    assert context.fmp.count("balance", "TRV") == 1
    assert a.current_metrics == b.current_metrics == c.current_metrics
    assert len(context.coordinator) == 0


@pytest.mark.asyncio
async def test_unknown_ticker_wraps_upstream_error(service, context):
    with pytest.raises(DataFetchError) as info:
        await service.fetch_company_financials("ZZZZ_INVALID")
    assert "Failed to fetch data for ZZZZ_INVALID" in str(info.value)
    assert isinstance(info.value.__cause__, UpstreamError)
    # Failure is neither cached nor left registered
    assert len(context.coordinator) == 0
    assert "financials_ZZZZ_INVALID" not in context.cache


@pytest.mark.asyncio
async def test_failure_is_retried_on_next_call(service, context):
    with pytest.raises(DataFetchError):
        await service.fetch_company_financials("ALL")
    context.fmp.add_company("ALL")
    result = await service.fetch_company_financials("ALL")
    assert result.ticker == "ALL"


@pytest.mark.asyncio
@pytest.mark.parametrize("income,message", [
    ([], "No financial data available for ZZZ"),
    ([income_statement("ZZZ", 2024, revenue=0)], "Invalid revenue data for ZZZ"),
    ([income_statement("ZZZ", 2024, calendarYear=None)], "Missing period information for ZZZ"),
    ([income_statement("ZZZ", 2024, period="")], "Missing period information for ZZZ"),
])
async def test_unusable_statements(service, context, income, message):
    context.fmp.income["ZZZ"] = income
    context.fmp.balance["ZZZ"] = [balance_sheet("ZZZ", 2024)]
    with pytest.raises(DataFetchError, match=message):
        await service.fetch_company_financials("ZZZ")


@pytest.mark.asyncio
async def test_batch_records_failures_in_order(service):
    results = await service.fetch_multiple_company_financials(["TRV", "ZZZZ_INVALID", "PGR"])
    assert [r.ticker for r in results] == ["TRV", "ZZZZ_INVALID", "PGR"]
    assert isinstance(results[0], CompanyFinancials)
    assert isinstance(results[2], CompanyFinancials)
    failed = results[1]
    assert isinstance(failed, BatchItemError)
    assert failed.current_metrics is None
    assert "ZZZZ_INVALID" in failed.error


@pytest.mark.asyncio
async def test_snapshot_store_backs_the_cache(service, context):
    context.snapshots = FakeSnapshots()
    first = await service.fetch_company_financials("TRV")
    assert "financials_TRV" in context.snapshots.docs

    context.cache.clear()
    restored = await service.fetch_company_financials("TRV")
    assert restored.source == "snapshot"
    assert restored.current_metrics == first.current_metrics
    assert context.fmp.count("income", "TRV") == 1


def test_premium_volume_proxy_in_millions():
    fin = CompanyFinancials.model_validate({
        "ticker": "TRV",
        "currentMetrics": {
            "revenue": 46.4e9, "netIncome": 0, "totalAssets": 0, "totalEquity": 0,
            "sharesOutstanding": 1, "profitMargin": 0, "roe": 0, "roa": 0,
            "bookValuePerShare": 0, "tangibleBookValue": 0, "debtToEquity": 0,
            "expenseRatio": 15, "lossRatio": 50, "combinedRatio": 65,
            "underwritingProfitMargin": 35, "investmentYield": 2.5,
            "floatPerShare": 0, "reserveRatio": 0,
        },
        "timestamp": "2025-01-01T00:00:00+00:00",
    })
    assert premium_volume_proxy(fin) == 46_400


# ═══════════════════════════════════════════════════════════════════════════
#  Market data
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_market_quote_mapping(service):
    quote = await service.fetch_market_data("trv")
    assert quote.symbol == "TRV"
    assert quote.price == 210.5
    assert quote.change_percent == 0.6
    assert quote.market_cap == 48e9
    assert quote.model_dump(by_alias=True)["changePercent"] == 0.6


@pytest.mark.asyncio
async def test_market_quote_symbol_mismatch(service, context):
    context.fmp.quotes["XYZ"] = [{"symbol": "ABC", "price": 10.0}]
    with pytest.raises(DataFetchError, match="symbol mismatch"):
        await service.fetch_market_data("XYZ")


@pytest.mark.asyncio
async def test_market_quote_non_positive_price(service, context):
    context.fmp.quotes["XYZ"] = [{"symbol": "XYZ", "price": 0}]
    with pytest.raises(DataFetchError, match="Invalid price data"):
        await service.fetch_market_data("XYZ")


@pytest.mark.asyncio
async def test_overview_combines_financials_and_quote(service):
    overview = await service.fetch_company_overview("PGR")
    assert overview.financials.ticker == "PGR"
    assert overview.market_data.symbol == "PGR"


# ═══════════════════════════════════════════════════════════════════════════
#  FRED context
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_industry_context_complete_is_cached(service, context):
    ctx = await service.fetch_industry_context()
    assert set(ctx.indicators) == {
        "INSURANCE_PREMIUMS", "PROPERTY_CLAIMS", "INTEREST_RATES", "INFLATION", "UNEMPLOYMENT",
    }
    assert ctx.error is None
    # "." readings are skipped
    assert ctx.indicators["INFLATION"].value == 315.6

    again = await service.fetch_industry_context()
    assert again.source == "cache"
    assert context.fred.calls.count("IIPNET") == 1


@pytest.mark.asyncio
async def test_industry_context_partial_is_returned_not_cached(service, context):
    context.fred.failing.add("IIPNET")
    ctx = await service.fetch_industry_context()
    assert "INSURANCE_PREMIUMS" not in ctx.indicators
    assert "PROPERTY_CLAIMS" in ctx.indicators
    assert "IIPNET" in ctx.error

    await service.fetch_industry_context()
    assert context.fred.calls.count("IIPNET") == 2


@pytest.mark.asyncio
async def test_economic_indicators_trend_and_history(service):
    ctx = await service.fetch_economic_indicators()
    assert list(ctx.indicators) == ["UNRATE", "FEDFUNDS", "CPIAUCSL", "GDP", "HOUST"]
    unrate = ctx.indicators["UNRATE"]
    assert unrate.value == 4.1
    assert unrate.trend == "up"
    assert len(unrate.historical) == 6
    assert ctx.indicators["FEDFUNDS"].trend == "down"


@pytest.mark.asyncio
async def test_economic_indicators_all_failing_never_raises(service, context):
    context.fred.failing.update({"UNRATE", "FEDFUNDS"})
    ctx = await service.fetch_economic_indicators(["unrate", "fedfunds"])
    assert ctx.indicators == {}
    assert "UNRATE" in ctx.error and "FEDFUNDS" in ctx.error


# ═══════════════════════════════════════════════════════════════════════════
#  SEC, validation, benchmarks
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_sec_profile_cached(service, context):
    profile = await service.fetch_sec_filings("trv")
    assert profile.cik == "0000086312"
    again = await service.fetch_sec_filings("TRV")
    assert again.source == "cache"
    assert context.sec.calls == ["TRV"]


@pytest.mark.asyncio
async def test_sec_unknown_ticker_raises(service):
    with pytest.raises(UpstreamError, match="CIK not found"):
        await service.fetch_sec_filings("ZZZ")


@pytest.mark.asyncio
async def test_validate_uses_sec_and_fred(service):
    report = await service.validate("TRV")
    names = {s.name for s in report.sources}
    assert names == {"SEC EDGAR", "FRED Economic Data"}
    assert report.data_quality != "error"
    assert any(
        r.type == "economic_context" and "4.33%" in r.message
        for r in report.recommendations
    )


@pytest.mark.asyncio
async def test_validate_unknown_to_sec_warns(service, context):
    context.fmp.add_company("ACGL")
    report = await service.validate("ACGL")
    assert "sec_validation" in [w.type for w in report.warnings]


@pytest.mark.asyncio
async def test_benchmarks_use_revenue_for_size(service):
    analysis = await service.fetch_benchmark_analysis("TRV")
    assert analysis.company_size == "large"
    assert analysis.peer_group.key == "largeDiversified"


@pytest.mark.asyncio
async def test_enhanced_financial_data(service):
    enhanced = await service.fetch_enhanced_financial_data("PGR")
    assert enhanced.financials.ticker == "PGR"
    assert "UNRATE" in enhanced.economic_context.indicators
    assert enhanced.validation.ticker == "PGR"


@pytest.mark.asyncio
async def test_shutdown_closes_clients_and_clears_cache(service, context):
    await service.fetch_company_financials("TRV")
    await context.shutdown()
    assert context.fmp.closed
    assert context.fred.closed
    assert len(context.cache) == 0
