from __future__ import annotations

import re
import time
import unicodedata
from collections.abc import Callable

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
SLUG_BASE_MAX_LENGTH = 45
SLUG_MAX_ATTEMPTS = 100

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    slug = _NON_ALNUM_RE.sub("-", stripped).strip("-")
    return slug[:SLUG_BASE_MAX_LENGTH]


def unique_slug(name: str, exists: Callable[[str], bool]) -> str:
    """Slug for ``name`` not yet taken according to ``exists``.

    Tries the base, then ``base-1`` .. ``base-99``; past that falls back to a millisecond timestamp.
    """

    base = slugify(name)
    slug = base
    counter = 1
    while exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
        if counter > SLUG_MAX_ATTEMPTS:
            slug = f"{base}-{int(time.time() * 1000)}"
            break
    return slug
