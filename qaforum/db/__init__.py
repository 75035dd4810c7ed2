"""
Database Layer for the forum curation core

Provides:
- Provider interfaces (TrustStore, AnswerProvider, UserRoleProvider, RequestProvider)
- ForumStore implementations (InMemory for dev, Postgres in postgres.py)
- Configuration and store factory
"""

from .store import (
    AnswerProvider,
    ForumStore,
    InMemoryForumStore,
    RequestProvider,
    TrustStore,
    UserRoleProvider,
)
from .config import DatabaseConfig, StoreDriver, get_database_url, get_store_driver

__all__ = [
    "AnswerProvider",
    "ForumStore",
    "InMemoryForumStore",
    "RequestProvider",
    "TrustStore",
    "UserRoleProvider",
    "DatabaseConfig",
    "StoreDriver",
    "get_database_url",
    "get_store_driver",
]
