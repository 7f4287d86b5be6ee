"""Financial Modeling Prep API client (primary statements + quotes).

Endpoints used:
  - income-statement/{ticker}          — most recent first
  - balance-sheet-statement/{ticker}   — most recent first
  - quote/{ticker}                     — latest market quote

Every failure is raised as UpstreamError("FMP", ...), including non-JSON
bodies and FMP "Error Message" payloads. No caching here; the data service
caches.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from pnc_dashboard.errors import MalformedPayloadError, UpstreamError

log = logging.getLogger(__name__)

FMP_BASE = "https://financialmodelingprep.com/api/v3"
COLLABORATOR = "FMP"


class FMPClient:
    """Async client for the FMP v3 REST API.

    Owns its aiohttp session unless one is passed in.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = FMP_BASE,
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

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if not self.api_key:
            raise UpstreamError(COLLABORATOR, "FMP_API_KEY is not set")

        url = f"{self.base_url}/{path.lstrip('/')}"
        query = {**(params or {}), "apikey": self.api_key}
        session = await self._get_session()
        try:
            async with session.get(url, params=query) as resp:
                if resp.status >= 400:
                    raise UpstreamError(
                        COLLABORATOR, f"HTTP {resp.status} {resp.reason or ''}".strip(),
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log.warning("FMP request failed for %s: %s", path, exc)
            raise UpstreamError(COLLABORATOR, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            log.warning("FMP returned non-JSON for %s: %s", path, exc)
            raise MalformedPayloadError(COLLABORATOR, f"invalid JSON response: {exc}") from exc

        if isinstance(data, dict) and "Error Message" in data:
            raise UpstreamError(COLLABORATOR, str(data["Error Message"]))
        return data

    async def _get_list(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        data = await self._get_json(path, params)
        if not isinstance(data, list):
            return []
        return [row for row in data if isinstance(row, dict)]

    async def get_income_statements(self, ticker: str, limit: int = 5) -> list[dict]:
        return await self._get_list(f"income-statement/{ticker}", {"limit": limit})

    async def get_balance_sheets(self, ticker: str, limit: int = 5) -> list[dict]:
        return await self._get_list(f"balance-sheet-statement/{ticker}", {"limit": limit})

    async def get_quote(self, ticker: str) -> list[dict]:
        return await self._get_list(f"quote/{ticker}")
