"""Top 20 pure-play P&C insurers by market cap (no health, banking or payments)."""

from __future__ import annotations

from pnc_dashboard.models import CompanyProfile

MARKET_CAP_CATEGORIES = ["Large", "Mid-Large", "Mid", "Small-Mid", "Small"]

BUSINESS_SEGMENTS = [
    "Diversified P&C", "Commercial P&C", "Personal Lines",
    "Auto Insurance", "Specialty P&C", "Reinsurance", "Insurtech P&C", "Insurtech Auto",
]


def _company(ticker: str, name: str, market_cap: str, segment: str, top5: bool = False) -> CompanyProfile:
    return CompanyProfile(ticker=ticker, name=name, market_cap=market_cap, segment=segment, is_top5=top5)


TOP_INSURANCE_COMPANIES: list[CompanyProfile] = [
    # Top 5: default comparison set
    _company("BRK-B", "Berkshire Hathaway Inc. Class B", "Large", "Diversified P&C", True),
    _company("PGR", "Progressive Corporation", "Large", "Auto Insurance", True),
    _company("TRV", "The Travelers Companies Inc.", "Large", "Commercial P&C", True),
    _company("ALL", "The Allstate Corporation", "Large", "Personal Lines", True),
    _company("CB", "Chubb Limited", "Large", "Commercial P&C", True),

    _company("AIG", "American International Group Inc.", "Large", "Commercial P&C"),
    _company("HIG", "The Hartford Financial Services Group Inc.", "Large", "Commercial P&C"),
    _company("CINF", "Cincinnati Financial Corporation", "Mid-Large", "Commercial P&C"),
    _company("WRB", "W. R. Berkley Corporation", "Mid-Large", "Commercial P&C"),
    _company("ACGL", "Arch Capital Group Ltd.", "Mid-Large", "Specialty P&C"),
    _company("EG", "Everest Group Ltd.", "Mid-Large", "Reinsurance"),
    _company("RNR", "RenaissanceRe Holdings Ltd.", "Mid", "Reinsurance"),
    _company("AFG", "American Financial Group Inc.", "Mid", "Specialty P&C"),
    _company("RLI", "RLI Corp.", "Mid", "Specialty P&C"),
    _company("SIGI", "Selective Insurance Group Inc.", "Mid", "Commercial P&C"),
    _company("KMPR", "Kemper Corporation", "Small-Mid", "Auto Insurance"),
    _company("UFCS", "United Fire Group Inc.", "Small-Mid", "Commercial P&C"),
    _company("PLMR", "Palomar Holdings Inc.", "Small-Mid", "Specialty P&C"),
    _company("LMND", "Lemonade Inc.", "Small-Mid", "Insurtech P&C"),
    _company("ROOT", "Root Inc.", "Small", "Insurtech Auto"),
]

DEFAULT_COMPANY = TOP_INSURANCE_COMPANIES[0]


def get_company_by_ticker(ticker: str) -> CompanyProfile | None:
    ticker = ticker.strip().upper()
    return next((c for c in TOP_INSURANCE_COMPANIES if c.ticker == ticker), None)


def get_top5_companies() -> list[CompanyProfile]:
    return [c for c in TOP_INSURANCE_COMPANIES if c.is_top5]


def get_companies_by_market_cap(market_cap: str) -> list[CompanyProfile]:
    return [c for c in TOP_INSURANCE_COMPANIES if c.market_cap == market_cap]


def get_companies_by_segment(segment: str) -> list[CompanyProfile]:
    return [c for c in TOP_INSURANCE_COMPANIES if c.segment == segment]
