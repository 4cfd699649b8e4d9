"""Data normalization utilities for consistent data quality."""

import unicodedata
from typing import Any, Optional


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


def split_given_names(names: str) -> tuple[str, Optional[str]]:
    """
    Split a free-text "nombres" field into first name and middle names.

    "Ana María José" -> ("Ana", "María José")

    Raises:
        ValueError: If no name is present
    """
    if not isinstance(names, str):
        raise ValueError("Member names must be text")
    parts = names.split()
    if not parts:
        raise ValueError("Member names are required")
    middle = " ".join(parts[1:]) or None
    return parts[0], middle


def is_empty_value(value: Any) -> bool:
    """Treat empty strings/collections as empty; counts False/0 as non-empty."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (int, float, bool)):
        return False
    if isinstance(value, dict):
        if not value:
            return True
        return all(is_empty_value(v) for v in value.values())
    if isinstance(value, list):
        if not value:
            return True
        return all(is_empty_value(v) for v in value)
    return False


def _strip_accents(value: str) -> str:
    """Remove diacritics for accent-insensitive matching."""
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", value) if not unicodedata.combining(ch)
    )


def normalize_search_text(value: Optional[str]) -> Optional[str]:
    """
    Normalize free-text for search matching.

    - Strip accents
    - Lowercase
    - Collapse whitespace
    """
    if not value:
        return None
    collapsed = " ".join(value.split())
    if not collapsed:
        return None
    return _strip_accents(collapsed).lower()
