"""Symbol master reconciliation."""

from .reconciler import Reconciler
from .runner import run_symbol_sync
from .store import CatalogStore, StoreError

__all__ = [
    "CatalogStore",
    "Reconciler",
    "StoreError",
    "run_symbol_sync",
]
