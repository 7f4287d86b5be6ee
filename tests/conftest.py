"""Shared fakes: a controllable clock and in-memory upstream clients."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone

import pytest

from pnc_dashboard.cache import TTLCache
from pnc_dashboard.config import Settings
from pnc_dashboard.context import ServiceContext
from pnc_dashboard.errors import UpstreamError
from pnc_dashboard.models import RegulatoryProfile


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def income_statement(ticker: str, year: int, revenue: float = 46.4e9, **overrides) -> dict:
    row = {
        "symbol": ticker,
        "calendarYear": str(year),
        "period": "FY",
        "revenue": revenue,
        "netIncome": revenue * 0.065,
        "operatingExpenses": revenue * 0.205,
        "sellingGeneralAndAdministrativeExpenses": revenue * 0.1,
        "weightedAverageShsOut": 228e6,
    }
    row.update(overrides)
    return row


def balance_sheet(ticker: str, year: int, **overrides) -> dict:
    row = {
        "symbol": ticker,
        "calendarYear": str(year),
        "period": "FY",
        "totalAssets": 126e9,
        "totalStockholdersEquity": 25.5e9,
        "totalDebt": 8e9,
    }
    row.update(overrides)
    return row


def statements(ticker: str, years: int = 5) -> tuple[list[dict], list[dict]]:
    """Newest-first statement lists, like FMP returns them."""
    span = range(2024, 2024 - years, -1)
    return (
        [income_statement(ticker, y) for y in span],
        [balance_sheet(ticker, y) for y in span],
    )


class FakeFMP:
    """Serves canned statements; unknown tickers fail like a bad symbol would."""

    def __init__(self):
        self.income: dict[str, list[dict]] = {}
        self.balance: dict[str, list[dict]] = {}
        self.quotes: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.closed = False
        for t in ("TRV", "PGR", "CB"):
            self.add_company(t)

    def add_company(self, ticker: str, price: float = 210.5) -> None:
        self.income[ticker], self.balance[ticker] = statements(ticker)
        self.quotes[ticker] = [{
            "symbol": ticker,
            "price": price,
            "change": 1.25,
            "changesPercentage": 0.6,
            "volume": 1_200_000,
            "marketCap": 48e9,
            "pe": 14.2,
        }]

    async def _serve(self, kind: str, table: dict, ticker: str) -> list[dict]:
        self.calls.append((kind, ticker))
        await asyncio.sleep(0)
        if ticker not in table:
            raise UpstreamError("FMP", f"HTTP 404 Not Found ({ticker})")
        return table[ticker]

    async def get_income_statements(self, ticker: str, limit: int = 5) -> list[dict]:
        return (await self._serve("income", self.income, ticker))[:limit]

    async def get_balance_sheets(self, ticker: str, limit: int = 5) -> list[dict]:
        return (await self._serve("balance", self.balance, ticker))[:limit]

    async def get_quote(self, ticker: str) -> list[dict]:
        return await self._serve("quote", self.quotes, ticker)

    def count(self, kind: str, ticker: str) -> int:
        return self.calls.count((kind, ticker))

    async def close(self) -> None:
        self.closed = True


def observations(values: list[str], start_year: int = 2025) -> list[dict]:
    """Newest-first FRED observations, one per month going back."""
    out = []
    for i, v in enumerate(values):
        month = 12 - (i % 12)
        year = start_year - i // 12
        out.append({"date": f"{year}-{month:02d}-01", "value": v})
    return out


class FakeFRED:
    def __init__(self):
        self.series: dict[str, list[dict]] = {
            "UNRATE": observations(["4.1", "4.0", "3.9", "3.8", "3.8", "3.7", "3.7", "3.6"]),
            "FEDFUNDS": observations(["4.33", "4.58", "4.83", "5.33", "5.33", "5.33"]),
            "CPIAUCSL": observations([".", "315.6", "315.5", "314.8"]),
            "GDP": observations(["29349.9", "29016.7"]),
            "HOUST": observations(["1366", "1299", "1311"]),
            "IIPNET": observations(["1020.5", "1001.2", "990.0", "980.1"]),
            "IIPCLM": observations(["510.0", "512.0", "509.0", "500.0"]),
        }
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.closed = False

    async def get_observations(self, series_id: str, limit: int = 12) -> list[dict]:
        self.calls.append(series_id)
        await asyncio.sleep(0)
        if series_id in self.failing:
            raise UpstreamError("FRED", f"{series_id}: HTTP 500 Internal Server Error")
        return self.series.get(series_id, [])[:limit]

    async def close(self) -> None:
        self.closed = True


class FakeSEC:
    def __init__(self):
        self.known = {"TRV": ("0000086312", "TRAVELERS COMPANIES, INC."),
                      "PGR": ("0000080661", "PROGRESSIVE CORP/OH/")}
        self.calls: list[str] = []

    def get_regulatory_profile(self, ticker: str) -> RegulatoryProfile:
        self.calls.append(ticker)
        if ticker not in self.known:
            raise UpstreamError("SEC EDGAR", f"CIK not found for ticker {ticker}")
        cik, name = self.known[ticker]
        return RegulatoryProfile(
            cik=cik,
            name=name,
            ticker=ticker,
            filing_count=1000,
            recent_10k_index=12,
            recent_10q_index=3,
            recent_8k_index=0,
            last_filing_date="2025-01-21",
            filing_frequency="frequent",
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, fmp_api_key="test", fred_api_key="test", mongodb_uri="")


@pytest.fixture
def context(settings, clock) -> ServiceContext:
    return ServiceContext(
        settings=settings,
        cache=TTLCache(
            default_ttl=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
            prefix=settings.cache_prefix,
            clock=clock,
        ),
        fmp=FakeFMP(),
        fred=FakeFRED(),
        sec=FakeSEC(),
        rng=random.Random(7),
    )
