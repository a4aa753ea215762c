"""
Database Layer - Public API

Usage:
    from database import Store
    store = Store(config.database_url)
    store.create_all()

Organization:
    - base.py: Engine, session factory and declarative base
    - categories.py: Category and merchant rule operations
    - transactions.py: Transaction insertion and history lookups
    - gmail.py: Credentials, tokens, sync cursor, processed messages, sender filters
    - store.py: Store facade combining the above
"""

from .base import Base, create_db_engine, make_session_factory, session_scope, utcnow
from .store import Store

__all__ = [
    "Base",
    "Store",
    "create_db_engine",
    "make_session_factory",
    "session_scope",
    "utcnow",
]
