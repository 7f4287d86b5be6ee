"""FRED (Federal Reserve Economic Data) client for macro context.

Observations come back newest first (``sort_order=desc``). FRED marks
missing readings with ``"."``; those are skipped when picking the latest
value and computing the trend.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
import pandas as pd

from pnc_dashboard.errors import MalformedPayloadError, UpstreamError
from pnc_dashboard.models import EconomicIndicator, Observation

log = logging.getLogger(__name__)

FRED_API_BASE = "https://api.stlouisfed.org/fred"
COLLABORATOR = "FRED"

# Industry context for P&C insurers
INSURANCE_INDUSTRY_SERIES: dict[str, str] = {
    "INSURANCE_PREMIUMS": "IIPNET",   # Net insurance premiums
    "PROPERTY_CLAIMS": "IIPCLM",      # Property insurance claims
    "INTEREST_RATES": "FEDFUNDS",     # Federal funds rate
    "INFLATION": "CPIAUCSL",          # Consumer price index
    "UNEMPLOYMENT": "UNRATE",         # Unemployment rate
}

DEFAULT_ECONOMIC_SERIES: tuple[str, ...] = ("UNRATE", "FEDFUNDS", "CPIAUCSL", "GDP", "HOUST")

# Percent change between the two latest readings below which a series is flat
TREND_THRESHOLD_PCT = 1.0


def _valid_values(observations: list[dict]) -> pd.DataFrame:
    if not observations:
        return pd.DataFrame(columns=["date", "value"])
    df = pd.DataFrame(observations)
    if "value" not in df.columns:
        return pd.DataFrame(columns=["date", "value"])
    if "date" not in df.columns:
        df["date"] = None
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    return df.dropna(subset=["value"])[["date", "value"]]


def calculate_trend(observations: list[dict]) -> str:
    """``"up"``, ``"down"`` or ``"stable"`` from the two latest valid readings."""
    valid = _valid_values(observations).head(3)
    if len(valid) < 2:
        return "stable"
    recent = float(valid["value"].iloc[0])
    previous = float(valid["value"].iloc[1])
    if previous == 0:
        return "stable"
    change = (recent - previous) / previous * 100
    if abs(change) < TREND_THRESHOLD_PCT:
        return "stable"
    return "up" if change > 0 else "down"


def summarize_series(
    series_id: str,
    observations: list[dict],
    history: int = 6,
) -> EconomicIndicator | None:
    """Latest valid value, its date, trend and a short history. None if no data."""
    valid = _valid_values(observations)
    if valid.empty:
        return None
    latest = valid.iloc[0]
    return EconomicIndicator(
        series_id=series_id,
        value=float(latest["value"]),
        date=str(latest["date"]) if latest["date"] is not None else None,
        trend=calculate_trend(observations),
        historical=[
            Observation(date=str(row["date"]), value=float(row["value"]))
            for _, row in valid.head(history).iterrows()
        ],
    )


class FREDClient:
    """Async client for FRED series observations."""

    def __init__(
        self,
        api_key: str,
        base_url: str = FRED_API_BASE,
        timeout: int = 30,
        session: aiohttp.ClientSession | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get_observations(self, series_id: str, limit: int = 12) -> list[dict[str, Any]]:
        """Newest-first observations for one series. Raises UpstreamError."""
        if not self.api_key:
            raise UpstreamError(COLLABORATOR, "FRED_API_KEY is not set")

        params = {
            "series_id": series_id,
            "api_key": self.api_key,
            "file_type": "json",
            "limit": limit,
            "sort_order": "desc",
        }
        session = await self._get_session()
        try:
            async with session.get(f"{self.base_url}/series/observations", params=params) as resp:
                if resp.status >= 400:
                    raise UpstreamError(
                        COLLABORATOR, f"{series_id}: HTTP {resp.status} {resp.reason or ''}".strip(),
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log.warning("FRED request failed for %s: %s", series_id, exc)
            raise UpstreamError(COLLABORATOR, f"{series_id}: {exc}") from exc
        except ValueError as exc:
            log.warning("FRED returned non-JSON for %s: %s", series_id, exc)
            raise MalformedPayloadError(COLLABORATOR, f"{series_id}: invalid JSON response: {exc}") from exc

        observations = data.get("observations") if isinstance(data, dict) else None
        return observations if isinstance(observations, list) else []
