"""
Transactions - Database Operations

Handles transaction insertion (with line items), dedup lookups and the
merchant history used by the category resolver.
"""

from sqlalchemy import desc

from .models.category import Category
from .models.transaction import Transaction, TransactionItem


def item_to_dict(item: TransactionItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "unit_price": item.unit_price,
        "total_price": item.total_price,
    }


def transaction_to_dict(txn: Transaction, include_items: bool = False) -> dict:
    result = {
        "id": txn.id,
        "user_id": txn.user_id,
        "category_id": txn.category_id,
        "merchant": txn.merchant,
        "merchant_normalized": txn.merchant_normalized,
        "amount": txn.amount,
        "transaction_date": txn.transaction_date,
        "provider": txn.provider,
        "direction": txn.direction,
        "confidence": txn.confidence,
        "source_hash": txn.source_hash,
        "notes": txn.notes,
        "created_at": txn.created_at,
    }
    if include_items:
        result["items"] = [item_to_dict(i) for i in txn.items]
    return result


class TransactionStoreMixin:
    """Transaction operations (requires get_session())."""

    def transaction_exists(self, source_hash: str) -> bool:
        with self.get_session() as session:
            return (
                session.query(Transaction.id)
                .filter(Transaction.source_hash == source_hash)
                .first()
                is not None
            )

    def insert_transaction(
        self,
        merchant: str,
        merchant_normalized: str,
        amount: int,
        transaction_date,
        provider: str,
        source_hash: str,
        category_id: int | None = None,
        confidence: float = 1.0,
        direction: str = "outgoing",
        notes: str | None = None,
        items: list[dict] | None = None,
        user_id: int = 1,
    ) -> int:
        """
        Insert a transaction and its line items in one commit.

        Args:
            items: dicts with name, quantity, unit_price, total_price

        Returns:
            New transaction id

        Raises:
            sqlalchemy.exc.IntegrityError: source_hash already stored
        """
        with self.get_session() as session:
            txn = Transaction(
                user_id=user_id,
                category_id=category_id,
                merchant=merchant,
                merchant_normalized=merchant_normalized,
                amount=amount,
                transaction_date=transaction_date,
                provider=provider,
                direction=direction,
                confidence=confidence,
                source_hash=source_hash,
                notes=notes,
            )
            for item in items or []:
                txn.items.append(
                    TransactionItem(
                        name=item["name"],
                        quantity=item.get("quantity", 1),
                        unit_price=item["unit_price"],
                        total_price=item["total_price"],
                    )
                )
            session.add(txn)
            session.commit()
            return txn.id

    def latest_category_for_merchant(self, merchant_key: str, user_id: int = 1) -> dict | None:
        """Category of the most recent categorized transaction for this merchant key."""
        with self.get_session() as session:
            row = (
                session.query(Category)
                .join(Transaction, Transaction.category_id == Category.id)
                .filter(
                    Transaction.user_id == user_id,
                    Transaction.merchant_normalized == merchant_key,
                )
                .order_by(
                    desc(Transaction.transaction_date),
                    desc(Transaction.created_at),
                    desc(Transaction.id),
                )
                .first()
            )
            if not row:
                return None
            return {"id": row.id, "name": row.name, "icon": row.icon, "color": row.color}

    def list_transactions(self, user_id: int = 1, limit: int | None = None) -> list[dict]:
        with self.get_session() as session:
            query = (
                session.query(Transaction)
                .filter(Transaction.user_id == user_id)
                .order_by(desc(Transaction.transaction_date), desc(Transaction.id))
            )
            if limit:
                query = query.limit(limit)
            return [transaction_to_dict(t) for t in query.all()]

    def get_transaction(self, transaction_id: int) -> dict | None:
        with self.get_session() as session:
            txn = session.get(Transaction, transaction_id)
            return transaction_to_dict(txn, include_items=True) if txn else None

    def count_transactions(self, user_id: int = 1) -> int:
        with self.get_session() as session:
            return session.query(Transaction).filter(Transaction.user_id == user_id).count()

    def update_transaction_category(self, transaction_id: int, category_id: int | None) -> bool:
        with self.get_session() as session:
            txn = session.get(Transaction, transaction_id)
            if not txn:
                return False
            txn.category_id = category_id
            session.commit()
            return True
