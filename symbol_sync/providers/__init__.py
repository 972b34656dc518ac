"""Market data provider clients."""

from .finnhub import FetchError, FinnhubClient, ParseError, ProviderError
from .rate_limit import RateLimiter

__all__ = [
    "FetchError",
    "FinnhubClient",
    "ParseError",
    "ProviderError",
    "RateLimiter",
]
