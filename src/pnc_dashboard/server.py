"""PNC-Dashboard: MCP server for P&C insurer analysis.

Tool hierarchy
──────────────
  Discovery
    1. list_insurers             — top 20 P&C carriers (filter by segment / size)

  Company data
    2. get_company_financials    — current + historical derived P&C metrics
    3. get_market_data           — latest quote
    4. compare_insurers          — batch metrics + peer positioning

  Quality and context
    5. validate_company          — benchmark score + SEC / FRED cross-checks
    6. get_benchmarks            — size-adjusted industry ratings, peer group
    7. get_industry_context      — FRED insurance and macro series
    8. get_sec_profile           — SEC EDGAR identity and filing cadence

  Narrative (Claude-powered)
    9. explain_company           — plain-prose analyst summary
   10. explain_comparison        — plain-prose comparison
"""

from __future__ import annotations

from fastmcp import FastMCP

from pnc_dashboard.companies import (
    TOP_INSURANCE_COMPANIES,
    get_companies_by_market_cap,
    get_companies_by_segment,
)
from pnc_dashboard.context import ServiceContext
from pnc_dashboard.data_service import InsuranceDataService
from pnc_dashboard.errors import DashboardError
from pnc_dashboard.models import CompanyFinancials
from pnc_dashboard.validation import compare_to_peers

mcp = FastMCP(name="PNC-Dashboard")

# Created on first tool call
_service: InsuranceDataService | None = None


def _get_service() -> InsuranceDataService:
    global _service
    if _service is None:
        _service = InsuranceDataService(ServiceContext.create())
    return _service


def _error(exc: Exception) -> dict:
    return {"error": str(exc)}


# ═══════════════════════════════════════════════════════════════════════════
#  DISCOVERY
# ═══════════════════════════════════════════════════════════════════════════


@mcp.tool()
def list_insurers(segment: str | None = None, market_cap: str | None = None) -> list[dict]:
    """List the top 20 pure-play P&C insurers.

    Args:
        segment: e.g. 'Commercial P&C', 'Personal Lines', 'Reinsurance'
        market_cap: one of 'Large', 'Mid-Large', 'Mid', 'Small-Mid', 'Small'
    """
    found = TOP_INSURANCE_COMPANIES
    if segment:
        found = get_companies_by_segment(segment)
    if market_cap:
        found = [c for c in found if c in get_companies_by_market_cap(market_cap)]
    return [c.model_dump(by_alias=True) for c in found]


# ═══════════════════════════════════════════════════════════════════════════
#  COMPANY DATA
# ═══════════════════════════════════════════════════════════════════════════


@mcp.tool()
async def get_company_financials(ticker: str) -> dict:
    """Combined, loss and expense ratios, ROE/ROA, book value and history.

    Combined and loss ratios are estimates: standard statements do not
    report premiums or incurred losses.
    """
    try:
        result = await _get_service().fetch_company_financials(ticker)
    except DashboardError as exc:
        return _error(exc)
    return result.model_dump(by_alias=True)


@mcp.tool()
async def get_market_data(ticker: str) -> dict:
    """Latest price, change, volume, market cap and P/E for a ticker."""
    try:
        result = await _get_service().fetch_market_data(ticker)
    except DashboardError as exc:
        return _error(exc)
    return result.model_dump(by_alias=True)


@mcp.tool()
async def compare_insurers(tickers: list[str]) -> dict:
    """Metrics for several insurers, plus how the first ranks against the rest.

    A ticker that fails is reported in place with its error; the others
    still come back.
    """
    results = await _get_service().fetch_multiple_company_financials(tickers)
    loaded = [r for r in results if isinstance(r, CompanyFinancials)]
    body: dict = {"results": [r.model_dump(by_alias=True) for r in results]}
    if loaded:
        body["peerComparison"] = compare_to_peers(loaded[0], loaded[1:]).model_dump(by_alias=True)
    return body


# ═══════════════════════════════════════════════════════════════════════════
#  QUALITY AND CONTEXT
# ═══════════════════════════════════════════════════════════════════════════


@mcp.tool()
async def validate_company(ticker: str) -> dict:
    """Confidence score (0-100) with per-metric ratings, warnings and sources."""
    try:
        report = await _get_service().validate(ticker)
    except DashboardError as exc:
        return _error(exc)
    return report.model_dump(by_alias=True)


@mcp.tool()
async def get_benchmarks(ticker: str) -> dict:
    """Industry percentile and rating per metric, strengths, weaknesses, peer group."""
    try:
        analysis = await _get_service().fetch_benchmark_analysis(ticker)
    except DashboardError as exc:
        return _error(exc)
    return analysis.model_dump(by_alias=True)


@mcp.tool()
async def get_industry_context() -> dict:
    """Net premiums, property claims, fed funds, CPI and unemployment from FRED."""
    context = await _get_service().fetch_industry_context()
    return context.model_dump(by_alias=True)


@mcp.tool()
async def get_sec_profile(ticker: str) -> dict:
    """SEC EDGAR name, CIK, SIC and filing frequency for a ticker."""
    try:
        profile = await _get_service().fetch_sec_filings(ticker)
    except DashboardError as exc:
        return _error(exc)
    return profile.model_dump(by_alias=True)


# ═══════════════════════════════════════════════════════════════════════════
#  NARRATIVE
# ═══════════════════════════════════════════════════════════════════════════


@mcp.tool()
async def explain_company(ticker: str) -> str:
    """Plain-prose analyst summary of one insurer. Requires ANTHROPIC_API_KEY."""
    service = _get_service()
    try:
        overview = await service.fetch_company_overview(ticker)
        text = await service.context.narrator.generate_insights_summary(
            overview.ticker, overview.financials.current_metrics, overview.market_data,
        )
    except DashboardError as exc:
        return f"Could not generate narrative: {exc}"
    return text or "Could not generate narrative: no data available"


@mcp.tool()
async def explain_comparison(tickers: list[str]) -> str:
    """Plain-prose comparison of two or more insurers. Requires ANTHROPIC_API_KEY."""
    service = _get_service()
    results = await service.fetch_multiple_company_financials(tickers)
    valid = [r for r in results if isinstance(r, CompanyFinancials)]
    try:
        return await service.context.narrator.generate_comparison_insights(valid)
    except DashboardError as exc:
        return f"Could not generate comparison: {exc}"


# ═══════════════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import sys

    from pnc_dashboard.logging_setup import configure_logging

    configure_logging()
    # python -m pnc_dashboard.server --sse  for remote hosting; STDIO otherwise
    if "--sse" in sys.argv:
        mcp.run(transport="sse")
    else:
        mcp.run()
