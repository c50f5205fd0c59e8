from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from core.trust_debt.adapters import presence_tables
from core.trust_debt.balancer import balance_categories
from core.trust_debt.categories import CategoryDefinition, CategoryStore
from core.trust_debt.matrix import build_presence_matrix
from core.trust_debt.models import EngineConfig, ReportMeta, TrustDebtReport
from core.trust_debt.report import generate_trust_debt_report
from core.trust_debt.scoring import calculate_trust_debt
from core.trust_debt.shortlex import sort_by_shortlex
from signal_tables import SignalTable

logger = logging.getLogger(__name__)


def run_trust_debt(
    *,
    definitions: Iterable[CategoryDefinition],
    signal: SignalTable,
    config: Optional[EngineConfig] = None,
    previous_total: Optional[float] = None,
    run_id: Optional[str] = None,
) -> TrustDebtReport:
    """
    One full run: store -> balance -> order -> matrix -> grade -> record.
    Definitional and corruption errors propagate to the caller.
    """
    config = config or EngineConfig()

    store = CategoryStore.from_definitions(definitions)
    balance = balance_categories(store.categories(), signal, config)
    ordered = sort_by_shortlex(list(balance.categories))

    intent_values, reality_values = presence_tables(ordered, signal, config.visibility_scale)
    matrix = build_presence_matrix(ordered, intent_values, reality_values, config)
    result = calculate_trust_debt(
        matrix,
        config.grade_boundaries,
        previous_total=previous_total,
        noise=config.trajectory_noise,
    )

    meta = ReportMeta(
        run_id=run_id or str(uuid.uuid4()),
        timestamp_utc=datetime.now(timezone.utc),
    )
    report = generate_trust_debt_report(
        meta=meta,
        ordered=ordered,
        matrix=matrix,
        result=result,
        balance=balance,
    )

    logger.info(
        "Trust debt run %s: categories=%d total=%.2f grade=%s unresolved=%s",
        meta.run_id, len(ordered), result.total_units, result.grade, balance.unresolved,
    )
    return report
