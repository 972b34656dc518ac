"""SQLAlchemy base metadata and declarative registry."""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for the catalog tables."""

    pass
