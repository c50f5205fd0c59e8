from __future__ import annotations

import math
from typing import List, Sequence

from core.trust_debt.models import (
    BalanceResult,
    BalanceSummary,
    Category,
    PresenceMatrix,
    ReportMeta,
    TrustDebtReport,
    TrustDebtResult,
)


def collect_warnings(balance: BalanceResult, matrix: PresenceMatrix) -> List[str]:
    """Machine-readable annotations for conditions that are reported, not raised."""
    warnings: List[str] = []
    if balance.unresolved:
        warnings.append("balancer_unresolved")
    for cid in balance.report.no_signal:
        warnings.append(f"no_signal:{cid}")
    if matrix.dimension == 0:
        warnings.append("empty_matrix")
    elif math.isinf(matrix.asymmetry_ratio):
        warnings.append("asymmetry_unbounded")
    return warnings


def generate_trust_debt_report(
    *,
    meta: ReportMeta,
    ordered: Sequence[Category],
    matrix: PresenceMatrix,
    result: TrustDebtResult,
    balance: BalanceResult,
) -> TrustDebtReport:
    return TrustDebtReport(
        meta=meta,
        categories=list(ordered),
        matrix=matrix,
        result=result,
        orthogonality=balance.report,
        balance=BalanceSummary(
            passes=balance.passes,
            unresolved=balance.unresolved,
            history=balance.history,
        ),
        warnings=collect_warnings(balance, matrix),
    )
