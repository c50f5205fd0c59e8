from __future__ import annotations

from typing import List, Sequence, Tuple

from core.trust_debt.errors import DuplicateCategoryId
from core.trust_debt.models import Category


ShortLexKey = Tuple[Tuple[int, str], ...]


def shortlex_key(category_id: str) -> ShortLexKey:
    """
    (length, text) per id segment. Comparing segment tuples puts "A" before
    "A.1" before "B", and "2" before "10" among siblings.
    """
    return tuple((len(seg), seg) for seg in category_id.split("."))


def shortlex_less(a: str, b: str) -> bool:
    return shortlex_key(a) < shortlex_key(b)


def sort_by_shortlex(categories: Sequence[Category]) -> List[Category]:
    seen = set()
    for c in categories:
        if c.id in seen:
            raise DuplicateCategoryId(c.id)
        seen.add(c.id)
    return sorted(categories, key=lambda c: shortlex_key(c.id))


def validate_order(categories: Sequence[Category]) -> bool:
    """
    True when ids are unique, keys strictly ascend, and every listed parent
    sits directly before its contiguous subtree. Never raises.
    """
    ids = [c.id for c in categories]
    if len(set(ids)) != len(ids):
        return False

    listed = set(ids)
    prev = None
    stack: List[str] = []
    for c in categories:
        key = shortlex_key(c.id)
        if prev is not None and not prev < key:
            return False
        prev = key

        # stack holds the open ancestor chain of the current position
        while stack and not c.id.startswith(stack[-1] + "."):
            stack.pop()
        if c.parent_id is not None and c.parent_id in listed:
            if not stack or stack[-1] != c.parent_id:
                return False
        stack.append(c.id)
    return True
