"""P&C Insurance Dashboard — JSON API.

Exposes the data pipeline (financials, quotes, validation, benchmarks,
macro context, Claude commentary) for the browser dashboard.

Run:  python -m pnc_dashboard.app
Open: http://localhost:{PORT}/docs  (default 8877)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pnc_dashboard import __version__
from pnc_dashboard.benchmarks import get_industry_trends
from pnc_dashboard.companies import (
    DEFAULT_COMPANY,
    TOP_INSURANCE_COMPANIES,
    get_companies_by_market_cap,
    get_companies_by_segment,
    get_company_by_ticker,
    get_top5_companies,
)
from pnc_dashboard.context import ServiceContext
from pnc_dashboard.data_service import InsuranceDataService
from pnc_dashboard.errors import DashboardError, NarrativeUnavailableError
from pnc_dashboard.formatting import summarize_financials
from pnc_dashboard.models import CompanyFinancials
from pnc_dashboard.validation import compare_to_peers, quick_quality_check

log = logging.getLogger(__name__)


class CompareRequest(BaseModel):
    tickers: list[str]
    insights: bool = False


class ChatRequest(BaseModel):
    message: str
    ticker: str = ""


def _dump(model: BaseModel) -> dict:
    return model.model_dump(by_alias=True)


def create_app(context_factory: Callable[[], ServiceContext] = ServiceContext.create) -> FastAPI:
    """Build the API; the context is created on startup and shut down on exit."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = context_factory()
        app.state.context = ctx
        app.state.service = InsuranceDataService(ctx)
        try:
            yield
        finally:
            await ctx.shutdown()

    app = FastAPI(title="P&C Insurance Dashboard", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NarrativeUnavailableError)
    async def narrative_unavailable(request: Request, exc: NarrativeUnavailableError):
        return JSONResponse(status_code=503, content={"error": str(exc), "retryable": False})

    @app.exception_handler(DashboardError)
    async def upstream_failed(request: Request, exc: DashboardError):
        log.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"error": str(exc), "retryable": True})

    def service(request: Request) -> InsuranceDataService:
        return request.app.state.service

    # ═══════════════════════════════════════════════════════════════════
    #  Health check
    # ═══════════════════════════════════════════════════════════════════

    @app.get("/health")
    async def health(request: Request):
        ctx: ServiceContext = request.app.state.context
        snapshots = ctx.snapshots
        return {
            "status": "ok",
            "version": __version__,
            "mongodb": "connected" if snapshots and snapshots.is_available() else "unavailable",
            "ai": "configured" if getattr(ctx.narrator, "available", False) else "unavailable",
            "cacheEntries": len(ctx.cache),
        }

    # ═══════════════════════════════════════════════════════════════════
    #  Catalog and company data
    # ═══════════════════════════════════════════════════════════════════

    @app.get("/api/companies")
    async def companies(
        segment: str | None = None,
        market_cap: str | None = None,
        ticker: str | None = None,
        top5: bool = False,
    ):
        found = get_top5_companies() if top5 else TOP_INSURANCE_COMPANIES
        if ticker:
            match = get_company_by_ticker(ticker)
            found = [c for c in found if c == match]
        if segment:
            found = [c for c in found if c in get_companies_by_segment(segment)]
        if market_cap:
            found = [c for c in found if c in get_companies_by_market_cap(market_cap)]
        return {"companies": [_dump(c) for c in found], "default": DEFAULT_COMPANY.ticker}

    @app.get("/api/financials/{ticker}")
    async def financials(ticker: str, request: Request):
        result = await service(request).fetch_company_financials(ticker)
        return {
            **_dump(result),
            "quality": _dump(quick_quality_check(result)),
            "display": summarize_financials(result.current_metrics),
        }

    @app.get("/api/market/{ticker}")
    async def market(ticker: str, request: Request):
        return _dump(await service(request).fetch_market_data(ticker))

    @app.post("/api/compare")
    async def compare(req: CompareRequest, request: Request):
        svc = service(request)
        results = await svc.fetch_multiple_company_financials(req.tickers)
        loaded = [r for r in results if isinstance(r, CompanyFinancials)]

        body: dict = {"results": [_dump(r) for r in results]}
        if loaded:
            body["peerComparison"] = _dump(compare_to_peers(loaded[0], loaded[1:]))
        if req.insights:
            narrator = request.app.state.context.narrator
            body["insights"] = await narrator.generate_comparison_insights(loaded)
        return body

    # ═══════════════════════════════════════════════════════════════════
    #  Validation, benchmarks, macro context
    # ═══════════════════════════════════════════════════════════════════

    @app.get("/api/validation/{ticker}")
    async def validation(ticker: str, request: Request):
        return _dump(await service(request).validate(ticker))

    @app.get("/api/benchmarks/{ticker}")
    async def benchmarks(ticker: str, request: Request):
        return _dump(await service(request).fetch_benchmark_analysis(ticker))

    @app.get("/api/industry-context")
    async def industry_context(request: Request):
        return _dump(await service(request).fetch_industry_context())

    @app.get("/api/industry-trends")
    async def industry_trends():
        return get_industry_trends()

    # ═══════════════════════════════════════════════════════════════════
    #  Claude commentary
    # ═══════════════════════════════════════════════════════════════════

    @app.get("/api/insights/{ticker}")
    async def insights(ticker: str, request: Request):
        overview = await service(request).fetch_company_overview(ticker)
        narrator = request.app.state.context.narrator
        text = await narrator.generate_insights_summary(
            overview.ticker, overview.financials.current_metrics, overview.market_data,
        )
        return {"ticker": overview.ticker, "insights": text}

    @app.post("/api/chat")
    async def chat(req: ChatRequest, request: Request):
        narrator = request.app.state.context.narrator
        ticker = req.ticker.strip().upper()
        metrics = quote = None
        if ticker:
            overview = await service(request).fetch_company_overview(ticker)
            metrics = overview.financials.current_metrics
            quote = overview.market_data
        answer = await narrator.generate_chat_response(req.message, ticker or None, metrics, quote)
        return {"ticker": ticker or None, "answer": answer}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from pnc_dashboard.config import get_config
    from pnc_dashboard.logging_setup import configure_logging

    config = get_config()
    configure_logging(config.log_level)
    print(f"\n  P&C Insurance Dashboard API → http://localhost:{config.port}\n")
    uvicorn.run(app, host="0.0.0.0", port=config.port, log_level="info")
