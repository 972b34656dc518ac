"""Symbol master reconciliation against the Finnhub symbol universe."""

__version__ = "0.1.0"
