"""Claude-powered P&C analyst commentary.

Builds short, bounded prompts from derived metrics (never raw statements)
and asks Claude for plain prose. Responses are scrubbed of any markdown the
model slips in, since the dashboard renders them as plain text.

Outcomes a caller can tell apart:
  - ``None`` from generate_insights_summary: no metrics/quote yet
  - NarrativeUnavailableError: ANTHROPIC_API_KEY not configured
  - NarrativeError: the API call failed or there was too little data
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Sequence

import anthropic

from pnc_dashboard.benchmarks import metric_value
from pnc_dashboard.errors import NarrativeError, NarrativeUnavailableError
from pnc_dashboard.formatting import format_market_cap

log = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Hard cap on the user prompt; the context block is cut before the question
MAX_PROMPT_CHARS = 4000

SYSTEM_PROMPT = """\
You are an expert P&C insurance analyst providing insights for a professional dashboard.

Formatting requirements:
- Use ONLY plain text with natural paragraph breaks.
- NO markdown, asterisks, bullets, numbered lists or special characters.
- Write in clear, professional paragraphs; concise but comprehensive.

Content focus:
- Combined ratio, loss ratio and expense ratio analysis
- Underwriting quality and profitability
- ROE, ROA and financial strength
- Competitive positioning and industry context
- Risk factors and growth prospects

Tone: professional, data-driven, confident but not speculative.
Do NOT make up numbers that aren't in the data.
"""

_BULLET = re.compile(r"^[ \t]*[-•*][ \t]+", re.MULTILINE)
_NUMBERED = re.compile(r"^[ \t]*\d+\.[ \t]+", re.MULTILINE)
_EMPHASIS = (
    re.compile(r"\*\*(.+?)\*\*"),
    re.compile(r"__(.+?)__"),
    re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])"),
    re.compile(r"(?<!\w)_(?!\s)(.+?)(?<!\s)_(?!\w)"),
)
_HEADING = re.compile(r"^[ \t]*#{1,6}[ \t]+", re.MULTILINE)
_BLANK_RUNS = re.compile(r"\n{3,}")


def clean_response_formatting(text: str | None) -> str:
    """Strip markdown emphasis, headings, bullets and numbered lists."""
    if not text:
        return ""
    text = _BULLET.sub("", text)
    text = _NUMBERED.sub("", text)
    text = _HEADING.sub("", text)
    for pattern in _EMPHASIS:
        text = pattern.sub(r"\1", text)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def _fmt(metrics: Any, name: str) -> str:
    v = metric_value(metrics, name)
    return "N/A" if v is None else f"{v:g}"


def _quote_field(quote: Any, name: str) -> Any:
    if quote is None:
        return None
    if isinstance(quote, Mapping):
        return quote.get(name)
    return getattr(quote, name, None)


def _current(company: Any) -> Any:
    if isinstance(company, Mapping):
        return company.get("currentMetrics")
    return getattr(company, "current_metrics", None)


def _ticker(company: Any) -> str:
    if isinstance(company, Mapping):
        return str(company.get("ticker", "?"))
    return str(getattr(company, "ticker", "?"))


def build_company_context(ticker: str, metrics: Any, quote: Any = None) -> str:
    """The metric block shared by the insights and chat prompts."""
    price = _quote_field(quote, "price")
    return (
        f"Company: {ticker}\n"
        f"Insurance Metrics: Combined Ratio {_fmt(metrics, 'combinedRatio')}%, "
        f"Loss Ratio {_fmt(metrics, 'lossRatio')}%, "
        f"Expense Ratio {_fmt(metrics, 'expenseRatio')}%\n"
        f"Financial Metrics: ROE {_fmt(metrics, 'roe')}%, ROA {_fmt(metrics, 'roa')}%, "
        f"Profit Margin {_fmt(metrics, 'profitMargin')}%\n"
        f"Valuation: Book Value ${_fmt(metrics, 'bookValuePerShare')}, "
        f"Current Price ${price if price else 'N/A'}, "
        f"Market Cap {format_market_cap(_quote_field(quote, 'market_cap'))}"
    )


def _bounded(context: str, instruction: str) -> str:
    instruction = instruction[:MAX_PROMPT_CHARS]
    room = MAX_PROMPT_CHARS - len(instruction) - 2
    context = context[: max(room, 0)]
    return f"{context}\n\n{instruction}" if context else instruction


class Narrator:
    """Async Claude client wrapper; the SDK client is created on first use."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.api_key = api_key
        self.model = model
        self._client: anthropic.AsyncAnthropic | None = None

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise NarrativeUnavailableError(
                "ANTHROPIC_API_KEY is not set. "
                "Add it to your .env file to enable AI insights."
            )
        self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            log.warning("Claude request failed: %s", exc)
            raise NarrativeError(f"AI service unavailable: {exc}") from exc

        text_parts = []
        for block in response.content:
            if hasattr(block, "text"):
                text_parts.append(block.text)
        text = clean_response_formatting("\n".join(text_parts))
        if not text:
            raise NarrativeError("AI service returned an empty response")
        return text

    async def generate_insights_summary(self, ticker: str, metrics: Any, quote: Any) -> str | None:
        """Three or four paragraphs on one company. None until data is loaded."""
        if metrics is None or quote is None:
            return None
        prompt = _bounded(
            f"Analyze {ticker} performance based on these metrics:\n\n"
            + build_company_context(ticker, metrics, quote),
            "Provide a comprehensive analysis in 3-4 clear paragraphs covering "
            "underwriting quality, profitability, and competitive positioning. "
            "Use plain text only. Be specific about what the metrics indicate "
            "about the company's performance and outlook.",
        )
        return await self._complete(prompt, max_tokens=400, temperature=0.5)

    async def generate_comparison_insights(self, companies: Sequence[Any]) -> str:
        """Comparative take on two or more companies' headline metrics."""
        valid = [c for c in companies if _current(c) is not None]
        if len(valid) < 2:
            raise NarrativeError("Need at least 2 companies for comparison")

        lines = " | ".join(
            f"{_ticker(c)}: Combined Ratio {_fmt(_current(c), 'combinedRatio')}%, "
            f"ROE {_fmt(_current(c), 'roe')}%, "
            f"Expense Ratio {_fmt(_current(c), 'expenseRatio')}%"
            for c in valid
        )
        prompt = _bounded(
            f"Compare these P&C insurers:\n\n{lines}",
            "Provide a clear comparison in 2-3 paragraphs using plain text only. "
            "Identify the top performer and explain why. Highlight differences in "
            "underwriting discipline and operational efficiency.",
        )
        return await self._complete(prompt, max_tokens=300, temperature=0.5)

    async def generate_chat_response(
        self,
        message: str,
        ticker: str | None = None,
        metrics: Any = None,
        quote: Any = None,
    ) -> str:
        """Answer a free-form question with the selected company as context."""
        if ticker and metrics is not None:
            context = "Dashboard Context:\n" + build_company_context(ticker, metrics, quote)
        else:
            context = "Dashboard Context:\nNo company data available."
        prompt = _bounded(
            context,
            f"{message.strip()}\n\nRespond in plain text paragraphs with practical "
            "insights on the company's performance and competitive position.",
        )
        return await self._complete(prompt, max_tokens=350, temperature=0.6)
