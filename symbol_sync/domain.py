"""Domain records exchanged between the provider, the reconciler and the store."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from symbol_sync.config import DEFAULT_DATA_SOURCE

if TYPE_CHECKING:
    from symbol_sync.providers.finnhub import ProviderError


@dataclass(frozen=True)
class SymbolStub:
    """One roster entry returned by the provider's symbol listing."""

    symbol: str
    exchange: Optional[str] = None
    currency: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class SymbolProfile:
    """Company metadata returned by the provider for one symbol."""

    name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    currency: Optional[str] = None
    country: Optional[str] = None
    ipo_date: Optional[date] = None
    market_cap: Optional[int] = None


class ProfileOutcome(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class ProfileResult:
    """Outcome of a profile lookup.

    A missing profile is an expected answer, not an error. Failures carry the
    ``FetchError`` or ``ParseError`` that caused them.
    """

    outcome: ProfileOutcome
    profile: Optional[SymbolProfile] = None
    error: Optional["ProviderError"] = None

    @classmethod
    def found(cls, profile: SymbolProfile) -> "ProfileResult":
        return cls(ProfileOutcome.FOUND, profile=profile)

    @classmethod
    def not_found(cls) -> "ProfileResult":
        return cls(ProfileOutcome.NOT_FOUND)

    @classmethod
    def failed(cls, error: "ProviderError") -> "ProfileResult":
        return cls(ProfileOutcome.FAILED, error=error)


@dataclass(frozen=True)
class SymbolRecord:
    """A row of the symbol master as written by one upsert."""

    symbol: str
    exchange: Optional[str] = None
    name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    currency: Optional[str] = None
    country: Optional[str] = None
    ipo_date: Optional[date] = None
    market_cap: Optional[int] = None
    data_source: str = DEFAULT_DATA_SOURCE

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("symbol must be a non-empty string")
        if self.market_cap is not None and self.market_cap < 0:
            raise ValueError(f"market_cap must be non-negative, got {self.market_cap}")

    @classmethod
    def from_stub(cls, stub: SymbolStub, *, data_source: str = DEFAULT_DATA_SOURCE) -> "SymbolRecord":
        """Bare record carrying only symbol and exchange."""

        return cls(symbol=stub.symbol, exchange=stub.exchange, data_source=data_source)

    @classmethod
    def from_profile(
        cls,
        stub: SymbolStub,
        profile: SymbolProfile,
        *,
        data_source: str = DEFAULT_DATA_SOURCE,
    ) -> "SymbolRecord":
        return cls(
            symbol=stub.symbol,
            exchange=stub.exchange,
            name=profile.name,
            sector=profile.sector,
            industry=profile.industry,
            currency=profile.currency or stub.currency,
            country=profile.country,
            ipo_date=profile.ipo_date,
            market_cap=profile.market_cap,
            data_source=data_source,
        )


class UpsertOutcome(str, enum.Enum):
    INSERTED = "inserted"
    REACTIVATED = "reactivated"
    REFRESHED = "refreshed"


class JobOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class JobRun:
    """Audit entry written once at the end of every reconciliation pass."""

    job_name: str
    last_run: datetime
    status: JobOutcome
    details: str


@dataclass
class SyncReport:
    """Counters collected over one reconciliation pass."""

    exchanges: list[str] = field(default_factory=list)
    observed: int = 0
    new: int = 0
    reactivated: int = 0
    refreshed: int = 0
    delisted: int = 0
    api_calls: int = 0
    errors: int = 0
    failure: Optional[str] = None
    status: JobOutcome = JobOutcome.SUCCESS

    @property
    def aborted(self) -> bool:
        return self.failure is not None

    @property
    def active(self) -> int:
        return self.observed

    def summary(self) -> str:
        counts = (
            f"observed={self.observed} new={self.new} reactivated={self.reactivated} "
            f"refreshed={self.refreshed} delisted={self.delisted} active={self.active} "
            f"api_calls={self.api_calls} errors={self.errors}"
        )
        if self.failure:
            return f"{self.failure}; {counts}"
        return counts


__all__ = [
    "JobOutcome",
    "JobRun",
    "ProfileOutcome",
    "ProfileResult",
    "SymbolProfile",
    "SymbolRecord",
    "SymbolStub",
    "SyncReport",
    "UpsertOutcome",
]
