from __future__ import annotations

import math
from typing import List, Optional, Sequence

from core.trust_debt.errors import CorruptMatrixInput
from core.trust_debt.models import (
    DEFAULT_GRADE_BOUNDARIES,
    GradeBoundary,
    PresenceMatrix,
    Trajectory,
    TrustDebtResult,
)


DEFAULT_TRAJECTORY_NOISE = 0.05  # 5% of the prior total


def check_boundaries(boundaries: Sequence[GradeBoundary]) -> List[GradeBoundary]:
    """Boundary tables must be non-empty, strictly ascending and open-ended."""
    table = list(boundaries)
    if not table:
        raise ValueError("grade boundary table is empty")
    for prev, nxt in zip(table, table[1:]):
        if not nxt.max_units > prev.max_units:
            raise ValueError(
                f"grade boundaries must ascend: {prev.grade}={prev.max_units} "
                f"then {nxt.grade}={nxt.max_units}"
            )
    if not math.isinf(table[-1].max_units):
        raise ValueError("last grade boundary must be unbounded (max_units = inf)")
    return table


def _check_units(value: float, what: str) -> float:
    if not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value) or value < 0:
        raise CorruptMatrixInput(None, None, value, what=what)
    return float(value)


def grade_for(total_units: float, boundaries: Sequence[GradeBoundary] = DEFAULT_GRADE_BOUNDARIES) -> str:
    total = _check_units(total_units, "total_units")
    table = check_boundaries(boundaries)
    for b in table:
        if total <= b.max_units:
            return b.grade
    # unreachable: the last boundary is inf
    return table[-1].grade


def trajectory(
    previous_total: float,
    current_total: float,
    noise: float = DEFAULT_TRAJECTORY_NOISE,
) -> Trajectory:
    """Less debt than before is improving; moves within noise x previous are stable."""
    prev = _check_units(previous_total, "previous_total_units")
    cur = _check_units(current_total, "total_units")
    delta = cur - prev
    if abs(delta) <= noise * prev:
        return "stable"
    return "improving" if delta < 0 else "degrading"


def calculate_trust_debt(
    matrix: PresenceMatrix,
    boundaries: Sequence[GradeBoundary] = DEFAULT_GRADE_BOUNDARIES,
    previous_total: Optional[float] = None,
    noise: float = DEFAULT_TRAJECTORY_NOISE,
) -> TrustDebtResult:
    upper = _check_units(matrix.upper_triangle_units, "upper_triangle_units")
    lower = _check_units(matrix.lower_triangle_units, "lower_triangle_units")
    diag = _check_units(matrix.diagonal_units, "diagonal_units")
    total = _check_units(upper + lower + diag, "total_units")

    table = check_boundaries(boundaries)
    return TrustDebtResult(
        total_units=total,
        grade=grade_for(total, table),
        upper_triangle_units=upper,
        lower_triangle_units=lower,
        diagonal_units=diag,
        asymmetry_ratio=matrix.asymmetry_ratio,
        boundaries=table,
        trajectory=trajectory(previous_total, total, noise) if previous_total is not None else None,
        previous_total_units=previous_total,
    )
