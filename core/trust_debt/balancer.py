"""
Category balancing.

Reshapes a category set until it passes the orthogonality gate and keeps
every category's share of signal mass inside [min_share, max_share]:

1. validate; stop when acceptable and balanced
2. split overloaded categories by keyword co-occurrence
3. merge underutilized categories into their most correlated sibling
4. re-check pairs, then move overlapping keywords off the lighter member
   of each pair still flagged
5. recompute vectors and go again

Every pass works on a fresh tuple of frozen categories, so earlier passes
stay inspectable. The loop is bounded by config.max_iterations and stops
early on a pass that changes nothing or revisits an earlier set.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from core.trust_debt.adapters import category_vector, keyword_mass, keyword_vector
from core.trust_debt.categories import CategoryStore, id_segments
from core.trust_debt.models import (
    BalancePass,
    BalanceResult,
    Category,
    EngineConfig,
    OrthogonalityReport,
)
from core.trust_debt.orthogonality import correlation_lookup, pearson, validate_categories
from core.trust_debt.shortlex import shortlex_key, sort_by_shortlex
from signal_tables import SignalTable

logger = logging.getLogger(__name__)

_TRAILING_NUMBER = re.compile(r"^(.*\D)(\d+)$")


# -----------------------------
# Helpers
# -----------------------------

def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    na = math.sqrt(float(a @ a))
    nb = math.sqrt(float(b @ b))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(a @ b) / (na * nb)


def _score(report: OrthogonalityReport) -> float:
    return report.orthogonality_score + report.coverage_score


def _last_segment(category_id: str) -> str:
    return id_segments(category_id)[-1]


def _child_id(parent_id: Optional[str], segment: str) -> str:
    return segment if parent_id is None else f"{parent_id}.{segment}"


def next_segment(existing: Iterable[str]) -> str:
    """
    Fresh sibling segment that sorts after every existing one:
    numeric siblings count up, single capitals step through the alphabet,
    anything else bumps (or gains) a numeric suffix on the greatest segment.
    """
    existing = set(existing)
    if not existing:
        return "1"
    if all(s.isdigit() for s in existing):
        return str(max(int(s) for s in existing) + 1)
    top = max(existing, key=lambda s: (len(s), s))
    if len(top) == 1 and "A" <= top < "Z":
        return chr(ord(top) + 1)
    m = _TRAILING_NUMBER.match(top)
    stem, n = (m.group(1), int(m.group(2)) + 1) if m else (top, 1)
    while f"{stem}{n}" in existing:
        n += 1
    return f"{stem}{n}"


def _next_child_id(by_id: Dict[str, Category], parent_id: Optional[str]) -> str:
    segments = [_last_segment(c.id) for c in by_id.values() if c.parent_id == parent_id]
    return _child_id(parent_id, next_segment(segments))


def partition_keywords(
    keywords: Sequence[str],
    signal: SignalTable,
) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """
    Two-way co-occurrence clustering of a keyword set.

    Seed 1 is the heaviest keyword, seed 2 the keyword co-occurring least
    with seed 1. The rest join the seed with higher cosine co-occurrence;
    ties go to the lighter group, then to the group of the alphabetically
    smaller seed. Keywords are visited alphabetically.
    """
    kws = sorted(keywords)
    if len(kws) < 2:
        raise ValueError("need at least two keywords to split")

    vecs = {k: keyword_vector(signal, k) for k in kws}
    mass = {k: float(vecs[k].sum()) for k in kws}

    seed1 = min(kws, key=lambda k: (-mass[k], k))
    rest = [k for k in kws if k != seed1]
    seed2 = min(rest, key=lambda k: (_cosine(vecs[k], vecs[seed1]), -mass[k], k))

    g1: List[str] = [seed1]
    g2: List[str] = [seed2]
    m1, m2 = mass[seed1], mass[seed2]
    for k in rest:
        if k == seed2:
            continue
        s1 = _cosine(vecs[k], vecs[seed1])
        s2 = _cosine(vecs[k], vecs[seed2])
        if s1 > s2:
            to_first = True
        elif s2 > s1:
            to_first = False
        elif m1 != m2:
            to_first = m1 < m2
        else:
            to_first = seed1 < seed2
        if to_first:
            g1.append(k)
            m1 += mass[k]
        else:
            g2.append(k)
            m2 += mass[k]

    return tuple(sorted(g1)), tuple(sorted(g2))


def _rename_subtree(
    by_id: Dict[str, Category],
    old_root: str,
    new_root: str,
    new_parent: str,
) -> Dict[str, Category]:
    out: Dict[str, Category] = {}
    prefix = old_root + "."
    for cid, cat in by_id.items():
        if cid == old_root:
            moved = cat.model_copy(update={"id": new_root, "parent_id": new_parent})
            out[new_root] = moved
        elif cid.startswith(prefix):
            new_id = new_root + cid[len(old_root):]
            new_pid = new_root + (cat.parent_id or "")[len(old_root):]
            out[new_id] = cat.model_copy(update={"id": new_id, "parent_id": new_pid})
        else:
            out[cid] = cat
    return out


def _absorb(by_id: Dict[str, Category], absorbed: Category, survivor: Category) -> Dict[str, Category]:
    merged = survivor.model_copy(update={
        "keywords": tuple(sorted(set(survivor.keywords) | set(absorbed.keywords))),
        "weight": survivor.weight + absorbed.weight,
    })
    out = dict(by_id)
    out[survivor.id] = merged

    children = sorted(
        (c for c in out.values() if c.parent_id == absorbed.id),
        key=lambda c: shortlex_key(c.id),
    )
    for child in children:
        new_id = _next_child_id(out, survivor.id)
        out = _rename_subtree(out, child.id, new_id, survivor.id)

    del out[absorbed.id]
    return out


# -----------------------------
# One adjustment pass
# -----------------------------

def _adjust(
    current: Tuple[Category, ...],
    report: OrthogonalityReport,
    signal: SignalTable,
    config: EngineConfig,
    iteration: int,
) -> Tuple[Tuple[Category, ...], BalancePass]:
    by_id: Dict[str, Category] = {c.id: c for c in current}
    touched = set()
    splits: List[str] = []
    merges: List[str] = []
    reassignments: List[str] = []

    # ---------- split overloaded ----------
    for cid in report.overloaded:
        cat = by_id.get(cid)
        if cat is None or len(cat.keywords) < 2:
            continue
        g1, g2 = partition_keywords(cat.keywords, signal)
        m1 = sum(keyword_mass(signal, k) for k in g1)
        m2 = sum(keyword_mass(signal, k) for k in g2)
        if m1 + m2 > 0:
            w1 = cat.weight * m1 / (m1 + m2)
            w2 = cat.weight * m2 / (m1 + m2)
        else:
            w1 = cat.weight * len(g1) / (len(g1) + len(g2))
            w2 = cat.weight * len(g2) / (len(g1) + len(g2))

        new_id = _next_child_id(by_id, cat.parent_id)
        by_id[cid] = cat.model_copy(update={"keywords": g1, "weight": w1})
        by_id[new_id] = Category(
            id=new_id,
            display_name=f"{cat.label} / {g2[0]}",
            parent_id=cat.parent_id,
            depth=cat.depth,
            keywords=g2,
            weight=w2,
        )
        splits.append(f"{cid}->{new_id}")
        touched.update({cid, new_id})
        logger.debug("pass %d: split %s -> %s %s / %s", iteration, cid, new_id, g1, g2)

    # ---------- merge underutilized ----------
    corr = correlation_lookup(report)
    for cid in report.underutilized:
        cat = by_id.get(cid)
        if cat is None or cid in touched:
            continue
        siblings = [c for c in by_id.values() if c.parent_id == cat.parent_id and c.id != cid]
        if not siblings:
            continue
        survivor = min(
            siblings,
            key=lambda s: (-corr.get(frozenset((cid, s.id)), 0.0), shortlex_key(s.id)),
        )
        by_id = _absorb(by_id, cat, survivor)
        merges.append(f"{cid}->{survivor.id}")
        touched.update({cid, survivor.id})
        logger.debug("pass %d: merged %s into %s", iteration, cid, survivor.id)

    # ---------- reassign overlapping keywords ----------
    # flagged pairs are taken from the set as it stands after splits and merges
    pairs = report
    if splits or merges:
        pairs = validate_categories(tuple(by_id.values()), signal, config)
    reassigned = set()
    for entry in pairs.flagged_pairs:
        a = by_id.get(entry.category_a)
        b = by_id.get(entry.category_b)
        if a is None or b is None or a.id in reassigned or b.id in reassigned:
            continue
        # heavier keeps the keywords; on equal weight the ShortLex-later id gives them up
        if a.weight >= b.weight:
            high, low = a, b
        else:
            high, low = b, a

        high_vec = category_vector(signal, high)

        def corr_to_high(k: str) -> float:
            return pearson(keyword_vector(signal, k), high_vec) or 0.0

        shared = set(low.keywords) & set(high.keywords)
        if not shared:
            shared = {k for k in low.keywords if corr_to_high(k) > config.reject_threshold}
        if not shared:
            continue

        keep = [k for k in low.keywords if k not in shared]
        if not keep:
            anchor = min(sorted(shared), key=lambda k: (corr_to_high(k), k))
            keep = [anchor]
            shared.discard(anchor)
            if not shared:
                continue

        by_id[low.id] = low.model_copy(update={"keywords": tuple(sorted(keep))})
        by_id[high.id] = high.model_copy(update={
            "keywords": tuple(sorted(set(high.keywords) | shared)),
        })
        moved = ",".join(sorted(shared))
        reassignments.append(f"{low.id}->{high.id}:{moved}")
        reassigned.update({low.id, high.id})
        logger.debug("pass %d: moved [%s] from %s to %s", iteration, moved, low.id, high.id)

    new = tuple(sort_by_shortlex(list(by_id.values())))
    # raises on any forest violation; a bug here must not pass silently
    CategoryStore.from_definitions(new)

    step = BalancePass(
        iteration=iteration,
        orthogonality_score=report.orthogonality_score,
        coverage_score=report.coverage_score,
        splits=splits,
        merges=merges,
        reassignments=reassignments,
    )
    return new, step


# -----------------------------
# Public entry point
# -----------------------------

def _state(categories: Tuple[Category, ...]) -> Tuple[Tuple[str, Optional[str], Tuple[str, ...]], ...]:
    # keyword assignment only; weights are not compared
    return tuple((c.id, c.parent_id, c.keywords) for c in categories)


def balance_categories(
    categories: Sequence[Category],
    signal: SignalTable,
    config: Optional[EngineConfig] = None,
) -> BalanceResult:
    config = config or EngineConfig()
    current = tuple(sort_by_shortlex(list(categories)))
    CategoryStore.from_definitions(current)

    report = validate_categories(current, signal, config)
    best_score, best_cats, best_report = _score(report), current, report
    seen = {_state(current)}
    history: List[BalancePass] = []

    while not (report.acceptable and report.balanced) and len(history) < config.max_iterations:
        iteration = len(history) + 1
        current, step = _adjust(current, report, signal, config, iteration)
        history.append(step)
        report = validate_categories(current, signal, config)
        if _score(report) > best_score:
            best_score, best_cats, best_report = _score(report), current, report

        if not step.changed:
            logger.debug("pass %d changed nothing; stopping early", iteration)
            break
        state = _state(current)
        if state in seen:
            logger.debug("pass %d returned to an earlier category set; stopping early", iteration)
            break
        seen.add(state)

    if report.acceptable and report.balanced:
        return BalanceResult(
            categories=current,
            report=report,
            passes=len(history),
            unresolved=False,
            history=history,
        )

    logger.warning(
        "Category balancing unresolved after %d pass(es): orthogonality=%.3f coverage=%.3f",
        len(history), best_report.orthogonality_score, best_report.coverage_score,
    )
    return BalanceResult(
        categories=best_cats,
        report=best_report,
        passes=len(history),
        unresolved=True,
        history=history,
    )
