# backend/database/models/transaction.py
"""
Transaction models for ingested receipts.

Maps to:
- transactions table (one row per deduplicated real-world purchase)
- transaction_items table (line items owned by a transaction)
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database.base import Base, utcnow


class Transaction(Base):
    """Deduplicated transaction; amount is integer cents."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, default=1)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    merchant = Column(String(255), nullable=False)
    merchant_normalized = Column(String(255), nullable=False)
    amount = Column(Integer, nullable=False)
    transaction_date = Column(Date, nullable=False)
    provider = Column(String(50), nullable=False)
    direction = Column(String(10), nullable=False, default="outgoing", server_default="outgoing")
    confidence = Column(Float, nullable=False, default=1.0)
    source_hash = Column(String(64), nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    items = relationship(
        "TransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )

    __table_args__ = (
        Index("idx_transactions_user_merchant", "user_id", "merchant_normalized"),
        Index("idx_transactions_date", "transaction_date"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, merchant={self.merchant}, amount={self.amount})>"


class TransactionItem(Base):
    """Line item of a transaction; prices are integer cents."""

    __tablename__ = "transaction_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(
        Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)

    transaction = relationship("Transaction", back_populates="items")

    def __repr__(self) -> str:
        return f"<TransactionItem(id={self.id}, name={self.name}, total={self.total_price})>"
