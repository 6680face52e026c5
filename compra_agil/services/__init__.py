"""Service layer exports."""

from .progress import (
    CollectingProgressSink,
    LoggingProgressSink,
    NullProgressSink,
    ProgressSink,
)
from .token_manager import TokenManager
from .crawler import CrawlController, CrawlResult, StopReason
from .enrichment import EnrichmentBatcher, is_eligible
from .session_health import SessionHealthClassifier, classify
from .scrape_runner import ScrapeOptions, ScrapeRunResult, ScrapeRunner, SingleFlightGuard
from .results import ResultWriter

__all__ = [
    "CollectingProgressSink",
    "CrawlController",
    "CrawlResult",
    "EnrichmentBatcher",
    "LoggingProgressSink",
    "NullProgressSink",
    "ProgressSink",
    "ResultWriter",
    "ScrapeOptions",
    "ScrapeRunResult",
    "ScrapeRunner",
    "SessionHealthClassifier",
    "SingleFlightGuard",
    "StopReason",
    "TokenManager",
    "classify",
    "is_eligible",
]
