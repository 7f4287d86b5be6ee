"""SEC EDGAR client for regulatory verification of P&C insurers.

Uses only public SEC endpoints (no API key needed, just User-Agent header):
  - company_tickers.json        — ticker→CIK fallback for unmapped tickers
  - submissions/CIK{cik}.json   — company identity + recent filing list

Rate limited to 8 req/sec per SEC guidelines. The client is synchronous
(requests); async callers run it in a worker thread.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import date, datetime, timezone
from typing import Any

import requests

from pnc_dashboard.cache import TTLCache
from pnc_dashboard.errors import UpstreamError
from pnc_dashboard.models import RegulatoryProfile

log = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════════════

SEC_BASE = "https://www.sec.gov"
DATA_BASE = "https://data.sec.gov"
TICKERS_URL = f"{SEC_BASE}/files/company_tickers.json"
SUBMISSIONS_URL = f"{DATA_BASE}/submissions/CIK{{cik}}.json"

COLLABORATOR = "SEC EDGAR"

# SEC requires a descriptive User-Agent with contact email
DEFAULT_USER_AGENT = "PNC-Dashboard pnc-dashboard@example.com"

# SEC allows up to 10 req/s; we use 8 to stay safe
MAX_REQUESTS_PER_SECOND = 8.0
MIN_REQUEST_INTERVAL = 1.0 / MAX_REQUESTS_PER_SECOND

TICKERS_CACHE_TTL = 1800    # 30 minutes for ticker→CIK mapping

# Registry ids for the major P&C carriers, so the common case skips the
# tickers download.
CIK_MAPPING: dict[str, str] = {
    "TRV": "0000086312",   # Travelers
    "AIG": "0000005272",   # American International Group
    "PGR": "0000080661",   # Progressive
    "ALL": "0000899051",   # Allstate
    "CB": "0000896159",    # Chubb
    "HIG": "0000874766",   # Hartford
    "CINF": "0000020286",  # Cincinnati Financial
    "WRB": "0000011544",   # W. R. Berkley
    "ACGL": "0000947484",  # Arch Capital
    "EG": "0001095073",    # Everest Group
    "RLI": "0000084246",   # RLI Corp
    "KMPR": "0000860748",  # Kemper
    "AFG": "0001042046",   # American Financial Group
}

# Days between the two most recent filings -> frequency label
_FREQUENCY_STEPS = ((30, "frequent"), (90, "regular"), (180, "periodic"))


# ═══════════════════════════════════════════════════════════════════════════
#  Pure helpers
# ═══════════════════════════════════════════════════════════════════════════

def _parse_date(value: Any) -> date | None:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def filing_frequency(filing_dates: list[str]) -> str:
    """Classify filing cadence from the gap between the two latest filings."""
    parsed = sorted(
        (d for d in (_parse_date(v) for v in filing_dates[:12]) if d is not None),
        reverse=True,
    )
    if len(parsed) < 2:
        return "insufficient_data"
    gap = (parsed[0] - parsed[1]).days
    for limit, label in _FREQUENCY_STEPS:
        if gap <= limit:
            return label
    return "infrequent"


def _first_index(forms: list[str], *wanted: str) -> int:
    for i, form in enumerate(forms):
        if form in wanted:
            return i
    return -1


def build_regulatory_profile(ticker: str, cik: str, submissions: dict) -> RegulatoryProfile:
    """Summarize a submissions payload into a RegulatoryProfile."""
    recent = (submissions.get("filings") or {}).get("recent") or {}
    forms = [str(f) for f in recent.get("form") or []]
    dates = [str(d) for d in recent.get("filingDate") or []]

    return RegulatoryProfile(
        cik=cik,
        name=submissions.get("name") or "",
        ticker=ticker.upper(),
        entity_type=submissions.get("entityType"),
        sic=str(submissions["sic"]) if submissions.get("sic") else None,
        sic_description=submissions.get("sicDescription"),
        filing_count=len(forms),
        recent_10k_index=_first_index(forms, "10-K"),
        recent_10q_index=_first_index(forms, "10-Q"),
        recent_8k_index=_first_index(forms, "8-K"),
        last_filing_date=dates[0] if dates else None,
        filing_frequency=filing_frequency(dates),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ═══════════════════════════════════════════════════════════════════════════
#  SEC EDGAR Client
# ═══════════════════════════════════════════════════════════════════════════

class SECClient:
    """HTTP client for SEC EDGAR public APIs.

    Thread-safe with rate limiting; the ticker map is cached in memory.
    Every failure surfaces as UpstreamError("SEC EDGAR", ...).
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout: int = 30):
        self.user_agent = user_agent
        self.timeout = timeout
        self.headers = {
            "User-Agent": user_agent,
            "Accept-Encoding": "gzip, deflate",
        }
        # Rate limiter state
        self._last_request_time = 0.0
        self._rate_lock = threading.Lock()
        self._tickers_cache = TTLCache(default_ttl=TICKERS_CACHE_TTL, max_entries=1)

    # ── Rate-limited HTTP request ─────────────────────────────────────

    def _request(self, url: str, retries: int = 2) -> requests.Response:
        """GET with rate limiting and retry on 429, 5xx and connection errors."""
        last_exc: Exception | None = None
        for attempt in range(1 + retries):
            with self._rate_lock:
                elapsed = time.time() - self._last_request_time
                if elapsed < MIN_REQUEST_INTERVAL:
                    time.sleep(MIN_REQUEST_INTERVAL - elapsed)
                self._last_request_time = time.time()

            try:
                resp = requests.get(url, headers=self.headers, timeout=self.timeout)
                if resp.status_code == 429:
                    wait = min(2 ** attempt, 10)
                    log.warning("SEC rate-limited (429), retrying in %ds…", wait)
                    time.sleep(wait)
                    continue
                if resp.status_code in (500, 502, 503, 504) and attempt < retries:
                    wait = min(2 ** attempt, 8)
                    log.warning("SEC %d error, retrying in %ds…", resp.status_code, wait)
                    time.sleep(wait)
                    continue
                resp.raise_for_status()
                return resp
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
                last_exc = exc
                if attempt < retries:
                    wait = min(2 ** attempt, 8)
                    log.warning("SEC connection error, retrying in %ds: %s", wait, exc)
                    time.sleep(wait)
                    continue
                raise UpstreamError(COLLABORATOR, str(exc)) from exc
            except requests.exceptions.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else 0
                raise UpstreamError(COLLABORATOR, f"HTTP {status} for {url}") from exc

        raise UpstreamError(
            COLLABORATOR,
            f"failed after {retries + 1} attempts: {last_exc or url}",
        )

    def _request_json(self, url: str) -> Any:
        resp = self._request(url)
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamError(COLLABORATOR, f"invalid JSON from {url}") from exc

    # ── Ticker → CIK resolution ──────────────────────────────────────

    def _get_tickers_map(self) -> dict[str, str]:
        """Uppercase ticker -> zero-padded CIK from company_tickers.json."""
        cached = self._tickers_cache.get("tickers")
        if cached is not None:
            return cached

        log.info("Fetching SEC company_tickers.json (cached for %ds)", TICKERS_CACHE_TTL)
        raw = self._request_json(TICKERS_URL)
        mapping: dict[str, str] = {}
        entries = raw.values() if isinstance(raw, dict) else []
        for entry in entries:
            ticker = str(entry.get("ticker", "")).upper()
            cik = str(entry.get("cik_str", ""))
            if ticker and cik.isdigit():
                mapping[ticker] = cik.zfill(10)
        self._tickers_cache.set("tickers", mapping)
        return mapping

    def resolve_cik(self, ticker: str) -> str:
        """Ticker or numeric CIK -> 10-digit CIK. Raises UpstreamError if unknown."""
        clean = ticker.strip().upper()
        if clean.isdigit():
            return clean.zfill(10)
        if clean in CIK_MAPPING:
            return CIK_MAPPING[clean]

        cik = self._get_tickers_map().get(clean)
        if cik is None:
            raise UpstreamError(COLLABORATOR, f"CIK not found for ticker {clean}")
        return cik

    # ── Submissions ──────────────────────────────────────────────────

    def get_submissions(self, cik: str) -> dict:
        data = self._request_json(SUBMISSIONS_URL.format(cik=cik.zfill(10)))
        if not isinstance(data, dict) or not data:
            raise UpstreamError(COLLABORATOR, f"empty submissions for CIK {cik}")
        return data

    def get_regulatory_profile(self, ticker: str) -> RegulatoryProfile:
        """Identity and filing cadence for a ticker from EDGAR submissions."""
        cik = self.resolve_cik(ticker)
        submissions = self.get_submissions(cik)
        profile = build_regulatory_profile(ticker, cik, submissions)
        log.info(
            "SEC profile for %s: %s (CIK %s, %d recent filings)",
            ticker, profile.name, cik, profile.filing_count,
        )
        return profile
