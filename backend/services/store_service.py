"""
Store Service - database bootstrap

Opens the configured database, creates missing tables and seeds the
default categories and sender filters.
"""

from database import Store
from ingest.categorizer import DEFAULT_CATEGORIES
from ingest.gmail_sync import DEFAULT_SENDER_FILTERS
from ingest.logging_config import get_logger

logger = get_logger(__name__)


def open_store(config, seed: bool = True) -> Store:
    """
    Open (and initialize) the Store for a configuration.

    Args:
        config: IngestConfig
        seed: Insert default categories and sender filters when missing

    Returns:
        Ready Store instance
    """
    store = Store(config.database_url)
    store.create_all()

    if seed:
        categories = store.seed_default_categories(DEFAULT_CATEGORIES, user_id=config.user_id)
        filters = store.seed_default_sender_filters(DEFAULT_SENDER_FILTERS)
        if categories or filters:
            logger.info(f"Seeded {categories} default categories and {filters} sender filters")

    return store
