"""Relational store: ORM models and per-table collections."""

from .models import (
    AreaHierarchy,
    Base,
    FinanceApplication,
    ImageCleanupLog,
    Promoter,
    Sale,
    Store,
    UserProfile,
)
from .store import Collection, Database, connect, create_store_engine

__all__ = [
    "AreaHierarchy",
    "Base",
    "Collection",
    "Database",
    "FinanceApplication",
    "ImageCleanupLog",
    "Promoter",
    "Sale",
    "Store",
    "UserProfile",
    "connect",
    "create_store_engine",
]
