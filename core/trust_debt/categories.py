from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from core.trust_debt.errors import (
    CyclicHierarchy,
    DuplicateCategoryId,
    InvalidCategoryDefinition,
    OrphanCategory,
)
from core.trust_debt.models import Category


SEGMENT_RE = re.compile(r"^[A-Za-z0-9]+$")

CategoryDefinition = Union[Category, Mapping[str, Any]]


def id_segments(category_id: str) -> List[str]:
    return category_id.split(".")


def is_valid_id(category_id: Any) -> bool:
    if not isinstance(category_id, str) or not category_id:
        return False
    return all(SEGMENT_RE.match(seg) for seg in id_segments(category_id))


def parent_path(category_id: str) -> Optional[str]:
    """Id prefix one level up ("A.1.b" -> "A.1"); None for roots."""
    if "." not in category_id:
        return None
    return category_id.rsplit(".", 1)[0]


def _coerce(definition: CategoryDefinition) -> Category:
    if isinstance(definition, Category):
        return definition
    raw_id = definition.get("id") if isinstance(definition, Mapping) else None
    try:
        return Category.model_validate(definition)
    except ValidationError as e:
        raise InvalidCategoryDefinition(raw_id, f"malformed definition: {e.errors()[0]['msg']}") from e


def _check_local(cat: Category) -> None:
    """Checks that need nothing but the definition itself."""
    if not is_valid_id(cat.id):
        raise InvalidCategoryDefinition(cat.id, "id is not ShortLex-syntax valid")
    if cat.depth < 0:
        raise InvalidCategoryDefinition(cat.id, "depth must be >= 0")
    if len(id_segments(cat.id)) != cat.depth + 1:
        raise InvalidCategoryDefinition(cat.id, f"depth {cat.depth} does not match id path")
    if cat.depth == 0 and cat.parent_id is not None:
        raise InvalidCategoryDefinition(cat.id, "root category cannot declare a parent")
    if cat.depth > 0 and not cat.parent_id:
        raise InvalidCategoryDefinition(cat.id, "non-root category needs a parent")
    if not cat.keywords:
        raise InvalidCategoryDefinition(cat.id, "keyword set is empty")
    if not math.isfinite(cat.weight) or cat.weight < 0:
        raise InvalidCategoryDefinition(cat.id, f"weight must be finite and >= 0, got {cat.weight}")


class CategoryStore:
    """
    Hierarchical category taxonomy for one run.

    Categories are frozen; the store only ever adds them. Balancing builds
    new stores from new tuples rather than editing this one.
    """

    def __init__(self) -> None:
        self._by_id: Dict[str, Category] = {}

    # -----------------------------
    # Construction
    # -----------------------------

    def add_category(self, definition: CategoryDefinition) -> Category:
        cat = _coerce(definition)
        _check_local(cat)
        if cat.id in self._by_id:
            raise DuplicateCategoryId(cat.id)

        if cat.depth > 0:
            parent = self._by_id.get(cat.parent_id or "")
            if parent is None:
                raise InvalidCategoryDefinition(cat.id, f"parent {cat.parent_id!r} does not exist")
            if cat.depth != parent.depth + 1:
                raise InvalidCategoryDefinition(cat.id, "depth must equal parent depth + 1")
            if parent_path(cat.id) != parent.id:
                raise InvalidCategoryDefinition(cat.id, f"id must extend parent id {parent.id!r}")

        self._by_id[cat.id] = cat
        return cat

    @classmethod
    def from_definitions(cls, definitions: Iterable[CategoryDefinition]) -> "CategoryStore":
        """
        Bulk load in any order, then validate the whole forest.
        Parent existence is only checked by validate_forest().
        """
        store = cls()
        for d in definitions:
            cat = _coerce(d)
            _check_local(cat)
            if cat.id in store._by_id:
                raise DuplicateCategoryId(cat.id)
            store._by_id[cat.id] = cat
        store.validate_forest()
        return store

    # -----------------------------
    # Validation
    # -----------------------------

    def validate_forest(self) -> None:
        for cat in self._by_id.values():
            chain = [cat.id]
            seen = {cat.id}
            node = cat
            while node.parent_id is not None:
                if node.parent_id in seen:
                    chain.append(node.parent_id)
                    raise CyclicHierarchy(chain)
                parent = self._by_id.get(node.parent_id)
                if parent is None:
                    raise OrphanCategory(node.id, node.parent_id)
                seen.add(parent.id)
                chain.append(parent.id)
                node = parent

        for cat in self._by_id.values():
            if cat.parent_id is None:
                if cat.depth != 0:
                    raise InvalidCategoryDefinition(cat.id, "root category must have depth 0")
                continue
            parent = self._by_id[cat.parent_id]
            if cat.depth != parent.depth + 1:
                raise InvalidCategoryDefinition(cat.id, "depth must equal parent depth + 1")
            if parent_path(cat.id) != parent.id:
                raise InvalidCategoryDefinition(cat.id, f"id must extend parent id {parent.id!r}")

    # -----------------------------
    # Queries
    # -----------------------------

    def get(self, category_id: str) -> Optional[Category]:
        return self._by_id.get(category_id)

    def categories(self) -> Tuple[Category, ...]:
        return tuple(self._by_id.values())

    def children_of(self, category_id: str) -> List[Category]:
        return [c for c in self._by_id.values() if c.parent_id == category_id]

    def siblings_of(self, category_id: str) -> List[Category]:
        cat = self._by_id[category_id]
        return [
            c for c in self._by_id.values()
            if c.parent_id == cat.parent_id and c.id != cat.id
        ]

    def descendants_of(self, category_id: str) -> List[Category]:
        prefix = category_id + "."
        return [c for c in self._by_id.values() if c.id.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._by_id

    def __iter__(self) -> Iterator[Category]:
        return iter(self._by_id.values())
