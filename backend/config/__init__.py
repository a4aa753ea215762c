"""Backend configuration module"""

from .ingest_config import DATA_DIR, DEFAULT_DATABASE_URL, IngestConfig, load_config

__all__ = [
    "DATA_DIR",
    "DEFAULT_DATABASE_URL",
    "IngestConfig",
    "load_config",
]
