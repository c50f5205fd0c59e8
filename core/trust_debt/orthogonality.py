from __future__ import annotations

import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from core.trust_debt.adapters import category_vectors
from core.trust_debt.models import Category, CorrelationEntry, EngineConfig, OrthogonalityReport
from core.trust_debt.shortlex import shortlex_key
from signal_tables import SignalTable

logger = logging.getLogger(__name__)


def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))


def pearson(a: np.ndarray, b: np.ndarray) -> Optional[float]:
    """Pearson r, or None when either vector has zero variance."""
    da = a - a.mean()
    db = b - b.mean()
    denom = math.sqrt(float(da @ da) * float(db @ db))
    if denom == 0.0:
        return None
    return clamp(float(da @ db) / denom, -1.0, 1.0)


def _uniformity(masses: List[float]) -> float:
    """1 - coefficient of variation of per-category mass, floored at 0."""
    if len(masses) < 2:
        return 1.0
    mean = sum(masses) / len(masses)
    if mean <= 0:
        return 0.0
    variance = sum((m - mean) ** 2 for m in masses) / len(masses)
    return clamp(1.0 - math.sqrt(variance) / mean)


def validate_orthogonality(
    vectors: Mapping[str, Sequence[float]],
    config: Optional[EngineConfig] = None,
) -> OrthogonalityReport:
    """
    Pairwise independence + coverage over per-category signal vectors.

    Pairs are enumerated in ShortLex order of category id so the report is
    identical however the mapping was built.
    """
    config = config or EngineConfig()
    ids = sorted(vectors, key=shortlex_key)
    arrays: Dict[str, np.ndarray] = {i: np.asarray(vectors[i], dtype=float) for i in ids}

    sizes = {a.shape[0] for a in arrays.values()}
    if len(sizes) > 1:
        raise ValueError(f"signal vectors must share one sample domain, got lengths {sorted(sizes)}")

    masses = [float(arrays[i].sum()) for i in ids]
    total = float(sum(masses))

    no_signal = [i for i in ids if not np.any(arrays[i])]
    for i in no_signal:
        logger.info("noSignal: category %s has an all-zero signal vector", i)

    if len(ids) < 2:
        return OrthogonalityReport(
            orthogonality_score=1.0,
            max_pairwise_correlation=0.0,
            coverage_score=1.0,
            uniformity_score=1.0,
            no_signal=no_signal,
            shares={i: (1.0 if total > 0 else 0.0) for i in ids},
            acceptable=True,
            balanced=True,
        )

    correlations: List[CorrelationEntry] = []
    flagged: List[CorrelationEntry] = []
    warnings: List[CorrelationEntry] = []
    max_corr = 0.0
    for x, a in enumerate(ids):
        for b in ids[x + 1:]:
            r = pearson(arrays[a], arrays[b])
            entry = CorrelationEntry(
                category_a=a,
                category_b=b,
                coefficient=0.0 if r is None else r,
                sample_size=int(arrays[a].shape[0]),
                undefined=r is None,
            )
            correlations.append(entry)
            mag = abs(entry.coefficient)
            max_corr = max(max_corr, mag)
            if mag > config.reject_threshold:
                flagged.append(entry)
            elif mag > config.warn_threshold:
                warnings.append(entry)

    shares: Dict[str, float] = {}
    underutilized: List[str] = []
    overloaded: List[str] = []
    if total > 0:
        for i, m in zip(ids, masses):
            share = m / total
            shares[i] = share
            if share < config.min_share:
                underutilized.append(i)
            elif share > config.max_share:
                overloaded.append(i)
        coverage = (len(ids) - len(underutilized) - len(overloaded)) / len(ids)
    else:
        shares = {i: 0.0 for i in ids}
        coverage = 0.0

    if flagged:
        logger.debug(
            "orthogonality: %d flagged pair(s), max |r|=%.4f",
            len(flagged), max_corr,
        )

    return OrthogonalityReport(
        orthogonality_score=clamp(1.0 - max_corr),
        max_pairwise_correlation=clamp(max_corr),
        coverage_score=clamp(coverage),
        uniformity_score=_uniformity(masses),
        correlations=correlations,
        flagged_pairs=flagged,
        warning_pairs=warnings,
        underutilized=underutilized,
        overloaded=overloaded,
        no_signal=no_signal,
        shares=shares,
        acceptable=not flagged,
        balanced=not underutilized and not overloaded,
    )


def validate_categories(
    categories: Sequence[Category],
    signal: SignalTable,
    config: Optional[EngineConfig] = None,
) -> OrthogonalityReport:
    return validate_orthogonality(category_vectors(categories, signal), config)


def correlation_lookup(report: OrthogonalityReport) -> Dict[frozenset, float]:
    return {frozenset((e.category_a, e.category_b)): e.coefficient for e in report.correlations}
