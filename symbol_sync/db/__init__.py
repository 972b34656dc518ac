"""Database engine, metadata and schema helpers."""
