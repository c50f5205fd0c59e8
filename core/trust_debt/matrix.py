from __future__ import annotations

import logging
import math
from typing import List, Mapping, Optional, Sequence, Tuple

from core.trust_debt.errors import CorruptMatrixInput, DuplicateCategoryId
from core.trust_debt.models import Category, EngineConfig, MatrixCell, PresenceMatrix, Triangle
from core.trust_debt.shortlex import validate_order

logger = logging.getLogger(__name__)


PairValues = Mapping[Tuple[str, str], float]


def triangle_for(i: int, j: int) -> Triangle:
    if i < j:
        return "upper"
    if i > j:
        return "lower"
    return "diagonal"


def _read(table: PairValues, row: str, col: str) -> float:
    value = table.get((row, col), 0.0)
    try:
        x = float(value)
    except (TypeError, ValueError) as e:
        raise CorruptMatrixInput(row, col, value) from e
    if not math.isfinite(x) or x < 0:
        raise CorruptMatrixInput(row, col, value)
    return x


def depth_penalty(depth_a: int, depth_b: int, coefficient: float) -> float:
    return 1.0 + coefficient * max(depth_a, depth_b)


def asymmetry(upper: float, lower: float) -> float:
    if lower == 0:
        return math.inf
    return upper / lower


def build_presence_matrix(
    ordered: Sequence[Category],
    intent_values: PairValues,
    reality_values: PairValues,
    config: Optional[EngineConfig] = None,
) -> PresenceMatrix:
    """
    NxN intent/reality matrix over a ShortLex-ordered category list.

    Upper triangle (row < col) carries reality ("what is being built"),
    lower triangle (row > col) carries intent ("what is being promised"),
    the diagonal carries |intent - reality| for the category itself.
    Sub-totals are accumulated in row-major order.
    """
    config = config or EngineConfig()

    ids = [c.id for c in ordered]
    seen = set()
    for cid in ids:
        if cid in seen:
            raise DuplicateCategoryId(cid)
        seen.add(cid)
    if not validate_order(ordered):
        logger.warning("Matrix built over a list that is not in ShortLex order; cells are positional")

    upper = 0.0
    lower = 0.0
    diagonal = 0.0
    cells: List[List[MatrixCell]] = []

    for i, row_cat in enumerate(ordered):
        row: List[MatrixCell] = []
        for j, col_cat in enumerate(ordered):
            intent = _read(intent_values, row_cat.id, col_cat.id)
            reality = _read(reality_values, row_cat.id, col_cat.id)
            tri = triangle_for(i, j)

            if tri == "upper":
                value = reality
            elif tri == "lower":
                value = intent
            else:
                value = abs(intent - reality)

            boost = config.diagonal_boost if tri == "diagonal" else 1.0
            debt = value * depth_penalty(row_cat.depth, col_cat.depth, config.depth_penalty) * boost

            if tri == "upper":
                upper += debt
            elif tri == "lower":
                lower += debt
            else:
                diagonal += debt

            row.append(MatrixCell(
                row=row_cat.id,
                col=col_cat.id,
                intent_value=intent,
                reality_value=reality,
                triangle=tri,
                debt_units=debt,
            ))
        cells.append(row)

    return PresenceMatrix(
        categories=ids,
        cells=cells,
        upper_triangle_units=upper,
        lower_triangle_units=lower,
        diagonal_units=diagonal,
        asymmetry_ratio=asymmetry(upper, lower),
    )
