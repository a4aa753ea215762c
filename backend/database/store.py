"""
Store - persistence facade for the ingest layer.

Combines the domain mixins over one engine and session factory.
"""

from sqlalchemy.engine import Engine

from .base import Base, create_db_engine, make_session_factory, session_scope
from .categories import CategoryStoreMixin
from .gmail import GmailStoreMixin
from .transactions import TransactionStoreMixin


class Store(CategoryStoreMixin, TransactionStoreMixin, GmailStoreMixin):
    """
    Transactional access to categories, rules, transactions and Gmail state.

    Every operation opens its own session; a failed operation rolls back
    and leaves no partial rows behind.
    """

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        if engine is None:
            if not database_url:
                raise ValueError("database_url or engine is required")
            engine = create_db_engine(database_url)
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    def create_all(self) -> None:
        """Create missing tables."""
        from . import models  # noqa: F401  (registers mappers)

        Base.metadata.create_all(self.engine)

    def get_session(self):
        return session_scope(self._session_factory)

    def dispose(self) -> None:
        self.engine.dispose()
