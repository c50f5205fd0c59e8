from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class TrustDebtError(Exception):
    """Base class for every error raised by the trust debt core."""

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": str(self)}


class InvalidCategoryDefinition(TrustDebtError):
    def __init__(self, category_id: Optional[str], reason: str):
        self.category_id = category_id
        self.reason = reason
        super().__init__(f"Invalid category {category_id!r}: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({"category_id": self.category_id, "reason": self.reason})
        return d


class DuplicateCategoryId(TrustDebtError):
    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Duplicate category id {category_id!r}")

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["category_id"] = self.category_id
        return d


class OrphanCategory(TrustDebtError):
    def __init__(self, category_id: str, parent_id: str):
        self.category_id = category_id
        self.parent_id = parent_id
        super().__init__(f"Category {category_id!r} declares missing parent {parent_id!r}")

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({"category_id": self.category_id, "parent_id": self.parent_id})
        return d


class CyclicHierarchy(TrustDebtError):
    def __init__(self, chain: Sequence[str]):
        self.chain: List[str] = list(chain)
        super().__init__("Cyclic parent chain: " + " -> ".join(self.chain))

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["chain"] = self.chain
        return d


class CorruptMatrixInput(TrustDebtError):
    """
    Non-finite or negative numbers reaching the matrix or the grade.
    row/col are category ids for a cell, or None for aggregate totals.
    """

    def __init__(self, row: Optional[str], col: Optional[str], value: Any, what: str = "cell value"):
        self.row = row
        self.col = col
        self.value = value
        self.what = what
        where = f"cell ({row}, {col})" if row is not None or col is not None else what
        super().__init__(f"Corrupt matrix input at {where}: {value!r}")

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({"row": self.row, "col": self.col, "value": repr(self.value), "what": self.what})
        return d
