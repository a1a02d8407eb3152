"""Content processing utilities - slug generation."""

import re
import unicodedata
import uuid
from typing import Optional

SLUG_MAX_LENGTH = 255
"""
Maximum slug length, same as the contents.slug column.
"""

# Characters spelled out or turned into separators before anything else is
# dropped. Matches the slugs already stored for existing content.
SLUG_SUBSTITUTIONS = {
    "%": " por cento",
    "&": " e ",
    ">": "-",
    "<": "-",
    "@": "-",
    ".": "-",
    ",": "-",
    "_": "-",
    "/": "-",
}

_INVALID_CHARS = re.compile(r"[^a-z0-9\s-]")
_SEPARATORS = re.compile(r"[\s-]+")


def slugify(title: Optional[str]) -> str:
    """
    Build a URL slug from a title.

    Applies the substitution table, folds accents to ASCII, lower-cases,
    drops remaining punctuation and joins words with single hyphens.
    The result is at most 255 characters and may be empty.

    Args:
        title: Content title (may be None)

    Returns:
        Slug string, empty when nothing usable is left
    """
    if not title:
        return ""

    text = "".join(SLUG_SUBSTITUTIONS.get(char, char) for char in title)
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = _INVALID_CHARS.sub("", text.lower())
    text = _SEPARATORS.sub("-", text).strip("-")
    return text[:SLUG_MAX_LENGTH].rstrip("-")


def generate_slug(title: Optional[str]) -> str:
    """Slug for *title*, or a random uuid when the title gives nothing."""
    return slugify(title) or str(uuid.uuid4())
