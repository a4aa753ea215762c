# backend/database/models/__init__.py
"""SQLAlchemy models for all database tables."""

from .category import Category, MerchantCategoryRule
from .gmail import (
    GmailCredential,
    GmailMessageFailure,
    GmailProcessedMessage,
    GmailSenderFilter,
    GmailSyncState,
    GmailToken,
)
from .transaction import Transaction, TransactionItem

__all__ = [
    "Category",
    "MerchantCategoryRule",
    "Transaction",
    "TransactionItem",
    "GmailCredential",
    "GmailToken",
    "GmailSyncState",
    "GmailSenderFilter",
    "GmailProcessedMessage",
    "GmailMessageFailure",
]
