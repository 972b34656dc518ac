"""Finnhub client used by the symbol sync job."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any

import httpx

from symbol_sync.config import get_settings
from symbol_sync.core.metrics import SyncMetrics, get_sync_metrics
from symbol_sync.domain import ProfileResult, SymbolProfile, SymbolStub
from symbol_sync.providers.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

SYMBOL_ENDPOINT = "stock/symbol"
PROFILE_ENDPOINT = "stock/profile2"
# Finnhub reports marketCapitalization in millions.
MARKET_CAP_UNIT = 1_000_000


class ProviderError(RuntimeError):
    """Base class for failures talking to the market data provider."""


class FetchError(ProviderError):
    """Raised on transport failures and non-2xx responses."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(ProviderError):
    """Raised when a response cannot be decoded into the expected shape."""


class FinnhubClient:
    """Throttled Finnhub client for the symbol roster and company profiles.

    Every HTTP attempt, retries included, takes one permit from the injected
    limiter and is counted as an API call. ``api_calls`` and ``errors`` are
    running totals for the lifetime of the client.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        rate_limiter: RateLimiter,
        metrics: SyncMetrics | None = None,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.finnhub_api_key
        self._limiter = rate_limiter
        self._metrics = metrics or get_sync_metrics()
        self._base_url = (base_url or settings.finnhub_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._max_retries = max_retries if max_retries is not None else settings.max_retries
        self._retry_delay = retry_delay if retry_delay is not None else settings.retry_delay_seconds
        self._sleep = sleep
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self.api_calls = 0
        self.errors = 0

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def list_symbols(self, exchange: str) -> list[SymbolStub]:
        """Return the full roster for ``exchange``.

        Raises ``FetchError`` or ``ParseError``; a partial roster is never
        returned.
        """

        response = await self._send(SYMBOL_ENDPOINT, {"exchange": exchange})
        self._ensure_ok(response, SYMBOL_ENDPOINT)
        try:
            return parse_symbol_list(_decode(response, SYMBOL_ENDPOINT), exchange)
        except ParseError:
            self._count_error("api_parse")
            raise

    async def get_profile(self, symbol: str) -> ProfileResult:
        """Look up company metadata for one symbol.

        Failures are returned inside the result rather than raised so a single
        bad profile never interrupts the caller.
        """

        try:
            response = await self._send(PROFILE_ENDPOINT, {"symbol": symbol})
            if response.status_code == 404:
                return ProfileResult.not_found()
            self._ensure_ok(response, PROFILE_ENDPOINT)
        except FetchError as exc:
            logger.warning("Failed to fetch profile for %s: %s", symbol, exc)
            return ProfileResult.failed(exc)

        try:
            profile = parse_profile(_decode(response, PROFILE_ENDPOINT))
        except ParseError as exc:
            self._count_error("api_parse")
            logger.warning("Failed to parse profile for %s: %s", symbol, exc)
            return ProfileResult.failed(exc)
        if profile is None:
            return ProfileResult.not_found()
        return ProfileResult.found(profile)

    async def _send(self, endpoint: str, params: dict[str, Any]) -> httpx.Response:
        """Issue one throttled GET, retrying while Finnhub answers 429."""

        url = f"{self._base_url}/{endpoint}"
        query = {**params, "token": self._api_key}
        attempt = 0
        while True:
            await self._limiter.acquire()
            self._count_call(endpoint)
            try:
                response = await self._client.get(url, params=query, timeout=self._timeout)
            except httpx.HTTPError as exc:
                self._count_error("api_fetch")
                raise FetchError(f"Failed to reach Finnhub {endpoint}: {exc}") from exc

            if response.status_code != 429:
                return response
            self._count_error("rate_limit")
            if attempt >= self._max_retries:
                raise FetchError(
                    f"Finnhub rate limit on {endpoint} persisted after {attempt + 1} attempts",
                    status_code=429,
                )
            attempt += 1
            logger.warning(
                "Rate limit hit on %s %s. Retrying after %.1fs (attempt %d/%d)",
                endpoint,
                params,
                self._retry_delay,
                attempt,
                self._max_retries,
            )
            await self._sleep(self._retry_delay)

    def _ensure_ok(self, response: httpx.Response, endpoint: str) -> None:
        if 200 <= response.status_code < 300:
            return
        self._count_error("api_fetch")
        raise FetchError(
            f"Finnhub {endpoint} error {response.status_code}: {_detail(response)}",
            status_code=response.status_code,
        )

    def _count_call(self, endpoint: str) -> None:
        self.api_calls += 1
        self._metrics.api_call(endpoint.rsplit("/", 1)[-1])

    def _count_error(self, kind: str) -> None:
        self.errors += 1
        self._metrics.error(kind)


def parse_symbol_list(payload: Any, exchange: str) -> list[SymbolStub]:
    """Convert a ``/stock/symbol`` payload into roster stubs."""

    if not isinstance(payload, list):
        raise ParseError(f"Symbol listing for {exchange} is not an array")
    stubs: list[SymbolStub] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ParseError(f"Symbol listing entry {index} for {exchange} is not an object")
        raw_symbol = item.get("symbol")
        if not isinstance(raw_symbol, str) or not raw_symbol.strip():
            raise ParseError(f"Symbol listing entry {index} for {exchange} has no symbol")
        stubs.append(
            SymbolStub(
                symbol=raw_symbol.strip(),
                exchange=_optional_str(item.get("mic")) or exchange,
                currency=_optional_str(item.get("currency")),
                description=_optional_str(item.get("description")),
            )
        )
    return stubs


def parse_profile(payload: Any) -> SymbolProfile | None:
    """Convert a ``/stock/profile2`` payload; ``None`` when Finnhub has no profile."""

    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise ParseError("Profile payload is not an object")
    if not payload:
        return None

    finnhub_industry = _optional_str(payload.get("finnhubIndustry"))
    return SymbolProfile(
        name=_optional_str(payload.get("name")),
        sector=_optional_str(payload.get("sector")) or finnhub_industry,
        industry=_optional_str(payload.get("industry")) or finnhub_industry,
        currency=_optional_str(payload.get("currency")),
        country=_optional_str(payload.get("country")),
        ipo_date=_parse_ipo(payload.get("ipo") or payload.get("ipoDate")),
        market_cap=_parse_market_cap(payload.get("marketCapitalization")),
    )


def _decode(response: httpx.Response, endpoint: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ParseError(f"Finnhub {endpoint} returned invalid JSON") from exc


def _detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("error", payload))
    return str(payload)[:200]


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(f"Expected a string, got {type(value).__name__}")
    return value.strip() or None


def _parse_ipo(value: Any) -> date | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def _parse_market_cap(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseError(f"marketCapitalization is not numeric: {value!r}")
    if not math.isfinite(value):
        raise ParseError(f"marketCapitalization is not finite: {value!r}")
    if value < 0:
        return None
    return int(round(value * MARKET_CAP_UNIT))


__all__ = [
    "FetchError",
    "FinnhubClient",
    "ParseError",
    "ProviderError",
    "parse_profile",
    "parse_symbol_list",
]
