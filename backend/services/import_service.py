"""
Import Service - Business Logic

Manual receipt import: HTML files dropped by the user and OCR text from
photographed receipts. Both paths share the fingerprint used by Gmail sync,
so a receipt is stored at most once whichever way it arrives.
"""

from sqlalchemy.exc import SQLAlchemyError

from ingest.categorizer import CategoryResolver
from ingest.error_tracking import ErrorStage, IngestError
from ingest.logging_config import get_logger
from ingest.merchant_normalizer import compute_fingerprint, normalize_merchant
from ingest.ocr_parser import OcrResult, parse_receipt_text
from ingest.receipt_parsers import (
    ExtractedTransaction,
    Recognized,
    Rejected,
    extract_receipt,
)

logger = get_logger(__name__)


def preview_import(store, html_files: list[str]) -> dict:
    """
    Parse HTML receipts and return a preview of new transactions.

    Args:
        store: Store (duplicate lookup)
        html_files: Raw HTML contents, one per file

    Returns:
        Dict with 'transactions' (list of transaction dicts), 'duplicates'
        (count) and 'errors' ('File N: reason' strings, 1-based)
    """
    transactions = []
    duplicates = 0
    errors = []

    for index, html in enumerate(html_files, start=1):
        outcome = extract_receipt(html)
        if isinstance(outcome, Recognized):
            transaction = outcome.transaction
            if store.transaction_exists(compute_fingerprint(transaction)):
                duplicates += 1
                logger.info(f"Skipping duplicate transaction: {transaction.merchant}")
            else:
                transactions.append(transaction.to_dict())
        elif isinstance(outcome, Rejected):
            errors.append(f"File {index}: {outcome.reason}")
        else:
            errors.append(f"File {index}: Not recognized as a receipt")

    return {"transactions": transactions, "duplicates": duplicates, "errors": errors}


def confirm_import(
    store,
    transactions: list[dict],
    category_assignments: dict | None = None,
    user_id: int = 1,
) -> dict:
    """
    Save previewed transactions.

    Args:
        store: Store instance
        transactions: Transaction dicts as returned by preview_import()
        category_assignments: {index: category_id} chosen by the user;
            each assignment is also learned as an exact merchant rule
        user_id: Owning user

    Returns:
        Dict with 'imported', 'skipped' (duplicates) and 'errors'
    """
    category_assignments = category_assignments or {}
    resolver = CategoryResolver(store)

    imported = 0
    skipped = 0
    errors = []

    for index, data in enumerate(transactions):
        transaction = ExtractedTransaction.from_dict(data)
        source_hash = compute_fingerprint(transaction)

        if store.transaction_exists(source_hash):
            skipped += 1
            continue

        merchant_key = normalize_merchant(transaction.merchant)
        assigned = category_assignments.get(index, category_assignments.get(str(index)))

        try:
            if assigned is not None:
                category_id = int(assigned)
            else:
                category = resolver.resolve(merchant_key, transaction.provider, user_id=user_id)
                category_id = category["id"] if category else None

            store.insert_transaction(
                merchant=transaction.merchant,
                merchant_normalized=merchant_key,
                amount=transaction.amount,
                transaction_date=transaction.transaction_date,
                provider=transaction.provider,
                source_hash=source_hash,
                category_id=category_id,
                confidence=transaction.confidence,
                direction=transaction.direction,
                items=[
                    {
                        "name": item.name,
                        "quantity": item.quantity,
                        "unit_price": item.unit_price,
                        "total_price": item.total_price,
                    }
                    for item in transaction.items
                ],
                user_id=user_id,
            )
        except SQLAlchemyError as e:
            IngestError.from_exception(
                e, ErrorStage.IMPORT, context={"provider": transaction.provider}
            ).log()
            errors.append(f"{transaction.merchant}: {e}")
            continue

        imported += 1

        # Rules are only learned for transactions that were actually stored
        if assigned is not None:
            try:
                resolver.learn_from_assignment(merchant_key, category_id, user_id=user_id)
            except SQLAlchemyError as e:
                IngestError.from_exception(
                    e, ErrorStage.IMPORT, context={"provider": transaction.provider}
                ).log()
                errors.append(f"{transaction.merchant}: could not save category rule: {e}")

    logger.info(f"Import confirmed: {imported} imported, {skipped} skipped, {len(errors)} errors")
    return {"imported": imported, "skipped": skipped, "errors": errors}


def import_receipt_text(store, text: str, confidence: float, user_id: int = 1) -> dict:
    """
    Parse OCR text from a receipt photo for preview.

    Args:
        store: Store (category suggestion)
        text: Full recognized text
        confidence: Recognizer confidence in [0, 1]

    Returns:
        Transaction dict plus 'suggested_category' (category dict or None)

    Raises:
        ValueError: Text could not be parsed into a transaction
    """
    outcome = parse_receipt_text(OcrResult(full_text=text or "", confidence=confidence))
    if isinstance(outcome, Rejected):
        raise ValueError(f"Failed to parse receipt text: {outcome.reason}")

    transaction = outcome.transaction
    suggested = None
    try:
        suggested = CategoryResolver(store).resolve(
            normalize_merchant(transaction.merchant), transaction.provider, user_id=user_id
        )
    except SQLAlchemyError as e:
        # Suggestion is best-effort
        logger.warning(f"Category suggestion failed for OCR receipt: {e}")

    if suggested:
        logger.info(f"Auto-categorized OCR receipt '{transaction.merchant}' -> {suggested['name']}")

    result = transaction.to_dict()
    result["suggested_category"] = suggested
    return result
