"""Pure set computations behind a reconciliation pass."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import TypeVar

from symbol_sync.domain import SymbolStub

T = TypeVar("T")


def dedupe_roster(stubs: Iterable[SymbolStub]) -> list[SymbolStub]:
    """Collapse repeated tickers, keeping the last stub seen for each.

    Order follows the first appearance of each symbol.
    """

    latest: dict[str, SymbolStub] = {}
    for stub in stubs:
        latest[stub.symbol] = stub
    return list(latest.values())


def compute_delisted(current_active: Iterable[str], observed: Iterable[str]) -> set[str]:
    """Symbols active before the pass that the provider no longer reports."""

    return set(current_active) - set(observed)


def batched(items: Sequence[T], size: int) -> Iterator[list[T]]:
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


__all__ = ["batched", "compute_delisted", "dedupe_roster"]
