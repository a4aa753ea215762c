# backend/database/models/category.py
"""
Category models for transaction classification.

Maps to:
- categories table
- merchant_category_rules table - User rules mapping merchant keys to categories
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from database.base import Base, utcnow


class Category(Base):
    """Transaction category for classification."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, default=1)
    name = Column(String(100), nullable=False)
    icon = Column(String(50), nullable=True)
    color = Column(String(20), nullable=True)
    is_system = Column(Boolean, nullable=False, default=False, server_default="0")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_categories_user_name"),
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name})>"


class MerchantCategoryRule(Base):
    """
    User rule mapping a normalized merchant key (exact) or a substring of
    it (pattern) to a category. One rule per (user_id, merchant_pattern).
    """

    __tablename__ = "merchant_category_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, default=1)
    merchant_pattern = Column(String(255), nullable=False)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    is_exact_match = Column(Boolean, nullable=False, default=False, server_default="0")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "merchant_pattern", name="uq_merchant_rules_user_pattern"),
        Index("idx_merchant_rules_user_exact", "user_id", "is_exact_match"),
    )

    def __repr__(self) -> str:
        kind = "exact" if self.is_exact_match else "pattern"
        return f"<MerchantCategoryRule(id={self.id}, {kind}={self.merchant_pattern}, category_id={self.category_id})>"
