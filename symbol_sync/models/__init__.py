"""Database model exports."""

from .job import JobStatusEntry
from .symbol import SymbolMaster

__all__ = [
    "JobStatusEntry",
    "SymbolMaster",
]
