from typing import Iterable, Optional


def lowercase(text: Optional[str]) -> str:
    """
    Lowercase free text for keyword matching.

    Punctuation is kept, so "nasi-kandar" does not match "nasi kandar".

    Args:
        text: Input text (None-safe)

    Returns:
        Lowercased text
    """
    return (text or "").lower()


def search_key(text: Optional[str]) -> str:
    """Lowercased, trimmed form stored for case-insensitive description search."""
    return lowercase(text).strip()


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)
