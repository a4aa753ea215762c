"""Receipt ingestion components.

This package contains:
- Receipt extraction (HTML email bodies and OCR text)
- Merchant normalization, fingerprinting and categorization
- Gmail API client, OAuth token management and incremental sync
- Background polling service
"""
