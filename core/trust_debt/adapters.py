from __future__ import annotations

from typing import Dict, Sequence, Tuple

import numpy as np

from core.trust_debt.models import Category
from signal_tables import SignalTable


PairTable = Dict[Tuple[str, str], float]


def keyword_vector(signal: SignalTable, keyword: str) -> np.ndarray:
    """Intent samples followed by reality samples, as one vector."""
    sig = signal.get(keyword)
    return np.asarray(sig.intent + sig.reality, dtype=float)


def keyword_mass(signal: SignalTable, keyword: str) -> float:
    return signal.get(keyword).mass


def _source_vector(signal: SignalTable, keywords: Sequence[str], source: str) -> np.ndarray:
    size = len(signal.intent_samples) if source == "intent" else len(signal.reality_samples)
    out = np.zeros(size, dtype=float)
    # sorted keywords keep float summation order fixed
    for kw in sorted(keywords):
        out = out + np.asarray(getattr(signal.get(kw), source), dtype=float)
    return out


def category_vector(signal: SignalTable, category: Category) -> np.ndarray:
    return np.concatenate([
        _source_vector(signal, category.keywords, "intent"),
        _source_vector(signal, category.keywords, "reality"),
    ])


def category_vectors(categories: Sequence[Category], signal: SignalTable) -> Dict[str, np.ndarray]:
    return {c.id: category_vector(signal, c) for c in categories}


def _co_presence(vectors: Dict[str, np.ndarray], ids: Sequence[str], scale: float) -> PairTable:
    total = float(sum(float(vectors[i].sum()) for i in ids))
    table: PairTable = {}
    for a in ids:
        for b in ids:
            if total <= 0:
                table[(a, b)] = 0.0
            elif a == b:
                table[(a, b)] = float(vectors[a].sum()) / total * scale
            else:
                table[(a, b)] = float(np.minimum(vectors[a], vectors[b]).sum()) / total * scale
    return table


def presence_tables(
    categories: Sequence[Category],
    signal: SignalTable,
    scale: float = 100.0,
) -> Tuple[PairTable, PairTable]:
    """
    Derive (intent_values, reality_values) pair tables from the keyword signal.

    Per source: a diagonal entry is the category's share of that source's
    total mass; an off-diagonal entry is the mass both categories share
    sample-by-sample (sum of element-wise minimum) over the same total.
    Both are multiplied by the visibility scale.
    """
    ids = [c.id for c in categories]
    intent_vecs = {c.id: _source_vector(signal, c.keywords, "intent") for c in categories}
    reality_vecs = {c.id: _source_vector(signal, c.keywords, "reality") for c in categories}
    return _co_presence(intent_vecs, ids, scale), _co_presence(reality_vecs, ids, scale)
