"""
Public slug helpers.

A slug is lowercase `[a-z0-9-]+`, at least 3 characters long, and usually
generated from the calendar name.
"""

import re
import unicodedata

MIN_SLUG_LENGTH = 3

_SLUG_RE = re.compile(r"^[a-z0-9-]+$")


def generate_slug_from_name(name: str) -> str:
    """
    Slugify a calendar name.

    Example:
        >>> generate_slug_from_name("Consultoria São Paulo")
        'consultoria-sao-paulo'
    """
    normalized = unicodedata.normalize("NFD", name.lower())
    without_accents = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s-]", "", without_accents)
    hyphenated = re.sub(r"\s+", "-", cleaned.strip())
    return re.sub(r"-+", "-", hyphenated).strip("-")


def is_valid_slug(slug: str | None) -> bool:
    if not slug or len(slug) < MIN_SLUG_LENGTH:
        return False
    return bool(_SLUG_RE.match(slug))
