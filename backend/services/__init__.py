"""
Services Package - Business Logic Layer

Command-level operations exposed to the desktop shell, CLI tools and tests.

Available services:
- store_service: Database bootstrap and seeding
- gmail_service: Gmail credentials, connection, polling and sender filters
- import_service: Manual HTML import and OCR receipt import
"""

from . import gmail_service, import_service, store_service

__all__ = [
    'gmail_service',
    'import_service',
    'store_service',
]
