# signal_tables.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


Source = Literal["intent", "reality"]


@dataclass
class KeywordSignal:
    # weighted frequency per documentation sample
    intent: List[float]
    # weighted frequency per commit / implementation sample
    reality: List[float]

    @property
    def mass(self) -> float:
        return float(sum(self.intent) + sum(self.reality))


@dataclass
class SignalTable:
    """
    Upstream keyword signal, already normalized to one scale by the extractor.
    Treated as read-only by the core.
    """
    intent_samples: List[str]
    reality_samples: List[str]
    keywords: Dict[str, KeywordSignal] = field(default_factory=dict)

    @property
    def sample_size(self) -> int:
        return len(self.intent_samples) + len(self.reality_samples)

    def zero_signal(self) -> KeywordSignal:
        return KeywordSignal(
            intent=[0.0] * len(self.intent_samples),
            reality=[0.0] * len(self.reality_samples),
        )

    def get(self, keyword: str) -> KeywordSignal:
        return self.keywords.get(keyword.strip().lower()) or self.zero_signal()


class InvalidSignal(ValueError):
    """Upstream signal table that cannot be read as keyword vectors."""


def _sample_labels(raw: Any, fallback_count: int, prefix: str) -> List[str]:
    if isinstance(raw, int):
        return [f"{prefix}{i}" for i in range(raw)]
    if raw:
        return [str(x) for x in raw]
    return [f"{prefix}{i}" for i in range(fallback_count)]


def _length(values: Any) -> int:
    return len(values) if isinstance(values, (list, tuple)) else 0


def _vector(values: Optional[List[Any]], size: int, keyword: str, source: Source) -> List[float]:
    if values is None:
        values = []
    if not isinstance(values, (list, tuple)):
        raise InvalidSignal(f"{source} vector for {keyword!r} must be a list, got {type(values).__name__}")
    if len(values) > size:
        raise InvalidSignal(f"{source} vector for {keyword!r} has {len(values)} entries, expected <= {size}")
    out: List[float] = []
    for v in values:
        try:
            x = float(v if v is not None else 0.0)
        except (TypeError, ValueError) as e:
            raise InvalidSignal(f"{source} vector for {keyword!r} contains invalid value {v!r}") from e
        if not math.isfinite(x) or x < 0:
            raise InvalidSignal(f"{source} vector for {keyword!r} contains invalid value {v!r}")
        out.append(x)
    out.extend([0.0] * (size - len(out)))
    return out


def build_signal_table(raw: Dict[str, Any]) -> SignalTable:
    """
    Build a SignalTable from the extractor's loose dict:

        {"intent_samples": ["README.md", ...] | 3,
         "reality_samples": ["abc123", ...] | 5,
         "keywords": {"drift": {"intent": [...], "reality": [...]}, ...}}

    Missing vectors become zeros, short vectors are zero-padded. Sample counts
    default to the longest vector seen when labels are absent. Anything else
    raises InvalidSignal.
    """
    keywords_raw = raw.get("keywords") or {}
    if not isinstance(keywords_raw, dict):
        raise InvalidSignal("keywords must map each keyword to its intent/reality vectors")
    for kw, vectors in keywords_raw.items():
        if vectors is not None and not isinstance(vectors, dict):
            raise InvalidSignal(f"signal for {kw!r} must be an object with intent/reality vectors")

    longest_intent = max((_length((v or {}).get("intent")) for v in keywords_raw.values()), default=0)
    longest_reality = max((_length((v or {}).get("reality")) for v in keywords_raw.values()), default=0)

    intent_samples = _sample_labels(raw.get("intent_samples"), longest_intent, "doc")
    reality_samples = _sample_labels(raw.get("reality_samples"), longest_reality, "commit")

    keywords: Dict[str, KeywordSignal] = {}
    for kw, vectors in sorted(keywords_raw.items()):
        token = str(kw).strip().lower()
        if not token:
            continue
        vectors = vectors or {}
        sig = KeywordSignal(
            intent=_vector(vectors.get("intent"), len(intent_samples), token, "intent"),
            reality=_vector(vectors.get("reality"), len(reality_samples), token, "reality"),
        )
        if token in keywords:
            # same token under different casing: accumulate
            prev = keywords[token]
            sig = KeywordSignal(
                intent=[a + b for a, b in zip(prev.intent, sig.intent)],
                reality=[a + b for a, b in zip(prev.reality, sig.reality)],
            )
        keywords[token] = sig

    return SignalTable(
        intent_samples=intent_samples,
        reality_samples=reality_samples,
        keywords=keywords,
    )
