"""SQLAlchemy base metadata and declarative registry."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base for the snapshot and cash history tables."""

    pass
