"""
URL-safe slug derivation.

``generate_slug`` is deterministic: the same name always yields the same base
slug. ``unique_slug`` appends ``-1``, ``-2``, ... until the caller-supplied
``exists`` check reports a free slug.
"""
import re
from typing import Callable

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_slug(name: str) -> str:
    """Lowercase, collapse every non-alphanumeric run into '-', trim edge dashes."""
    return _NON_ALNUM.sub("-", name.lower()).strip("-")


def unique_slug(name: str, exists: Callable[[str], bool], fallback: str = "item") -> str:
    """
    Return the first slug derived from ``name`` that ``exists`` rejects.

    Args:
        name: Display name to derive the slug from
        exists: Callable returning True when a slug is already taken
        fallback: Base used when the name has no [a-z0-9] characters
    """
    base = generate_slug(name) or fallback
    candidate = base
    suffix = 0
    while exists(candidate):
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate
