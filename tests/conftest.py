"""
Pytest fixtures for trust debt tests.

Signal vectors are built from rows of an 8x8 Sylvester-Hadamard matrix:
rows 1..7 are zero-mean and mutually orthogonal, so
x_k = offset + z_k + t * c (c another row) gives every pair of x_k a
Pearson correlation of exactly t^2 / (1 + t^2) and identical mass.
"""

from __future__ import annotations

import math
import os
import sys
from typing import Dict, List

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from signal_tables import KeywordSignal, SignalTable

SAMPLES = 8
INTENT_SAMPLES = 4


def hadamard_row(i: int, n: int = SAMPLES) -> List[float]:
    return [float((-1) ** bin(i & j).count("1")) for j in range(n)]


def correlated_vectors(count: int, r: float) -> List[List[float]]:
    """count (<= 6) vectors over 8 samples with pairwise correlation exactly r."""
    t = math.sqrt(r / (1.0 - r))
    offset = 2.0 + t
    common = hadamard_row(7)
    return [
        [offset + z + t * c for z, c in zip(hadamard_row(k + 1), common)]
        for k in range(count)
    ]


def signal_from_vectors(vectors: Dict[str, List[float]]) -> SignalTable:
    """First four samples are documentation (intent), last four commits (reality)."""
    return SignalTable(
        intent_samples=[f"doc{i}" for i in range(INTENT_SAMPLES)],
        reality_samples=[f"commit{i}" for i in range(SAMPLES - INTENT_SAMPLES)],
        keywords={
            kw: KeywordSignal(intent=list(v[:INTENT_SAMPLES]), reality=list(v[INTENT_SAMPLES:]))
            for kw, v in vectors.items()
        },
    )


@pytest.fixture
def make_signal():
    return signal_from_vectors


@pytest.fixture
def make_correlated():
    return correlated_vectors


@pytest.fixture
def hadamard():
    return hadamard_row


@pytest.fixture
def five_balanced():
    """Five root categories, one keyword each, pairwise r = 0.05, 20% share each."""
    ids = ["A", "B", "C", "D", "E"]
    keywords = ["measure", "render", "enforce", "document", "deploy"]
    vectors = correlated_vectors(5, 0.05)
    definitions = [
        {"id": cid, "display_name": kw.title(), "depth": 0, "keywords": [kw], "weight": 0.2}
        for cid, kw in zip(ids, keywords)
    ]
    signal = signal_from_vectors(dict(zip(keywords, vectors)))
    return definitions, signal
