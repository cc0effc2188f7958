"""
Document number normalization for fuzzy invoice number comparison.

Vendors print the same invoice number as "INV-001", "INV 001" or "inv001";
normalizing reduces all of these to one comparable key.
"""

from typing import Any


def normalize(raw: Any) -> str:
    """
    Canonicalize a document or invoice number.

    Lower-cases the value and drops every character that is not a letter or
    digit. Never raises; None and empty input give an empty string.

    Args:
        raw: Invoice number as printed on the statement or ledger

    Returns:
        Normalized key, e.g. "inv001"
    """
    if raw is None:
        return ""
    return ''.join(ch for ch in str(raw).lower() if ch.isalnum())


def exact_document_key(raw: Any) -> str:
    """Key for strict passes: the raw number with surrounding whitespace trimmed."""
    if raw is None:
        return ""
    return str(raw).strip()
