"""Exception types raised by the data access and narrative layers.

Pure computations (metrics, benchmarks) never raise, and the validation
engine folds every failure into its report, so these only surface from
value-or-failure calls.
"""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for all dashboard errors."""


class UpstreamError(DashboardError):
    """An external collaborator (FMP, FRED, SEC EDGAR, Anthropic) failed."""

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        self.message = message
        super().__init__(f"{collaborator}: {message}")


class MalformedPayloadError(UpstreamError):
    """The upstream answered, but with nothing usable (non-JSON, empty list, no period)."""


class DataFetchError(DashboardError):
    """Top-level fetch failure for one ticker, wrapping the underlying cause."""

    def __init__(self, ticker: str, message: str):
        self.ticker = ticker
        super().__init__(message)


class NarrativeError(DashboardError):
    """Text generation was attempted and failed."""


class NarrativeUnavailableError(NarrativeError):
    """Text generation is not configured (no API key)."""
