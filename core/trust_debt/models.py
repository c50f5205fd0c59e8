from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


Triangle = Literal["upper", "lower", "diagonal"]
Trajectory = Literal["improving", "stable", "degrading"]

ENGINE_VERSION = "trust-debt-v1.0"


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    parent_id: Optional[str] = None
    depth: int = 0
    keywords: Tuple[str, ...] = ()
    weight: float = 0.0

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v: Any) -> Tuple[str, ...]:
        """Lower-case, strip, de-duplicate and sort keyword tokens."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        tokens = {str(k).strip().lower() for k in v}
        tokens.discard("")
        return tuple(sorted(tokens))

    @property
    def label(self) -> str:
        return self.display_name or self.id


class CorrelationEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_a: str
    category_b: str
    coefficient: float = Field(ge=-1.0, le=1.0)
    sample_size: int = Field(ge=0)

    # zero-variance vector on either side; coefficient reported as 0
    undefined: bool = False


class OrthogonalityReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    orthogonality_score: float = Field(ge=0, le=1)
    max_pairwise_correlation: float = Field(ge=0, le=1)
    coverage_score: float = Field(ge=0, le=1)
    uniformity_score: float = Field(ge=0, le=1)

    correlations: List[CorrelationEntry] = Field(default_factory=list)
    flagged_pairs: List[CorrelationEntry] = Field(default_factory=list)
    warning_pairs: List[CorrelationEntry] = Field(default_factory=list)

    underutilized: List[str] = Field(default_factory=list)
    overloaded: List[str] = Field(default_factory=list)
    no_signal: List[str] = Field(default_factory=list)
    shares: Dict[str, float] = Field(default_factory=dict)

    acceptable: bool
    balanced: bool

    @computed_field  # type: ignore[misc]
    @property
    def health_score(self) -> float:
        return (self.orthogonality_score + self.coverage_score + self.uniformity_score) / 3.0


class MatrixCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: str
    col: str
    intent_value: float
    reality_value: float
    triangle: Triangle
    debt_units: float


class PresenceMatrix(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    categories: List[str]
    cells: List[List[MatrixCell]]

    upper_triangle_units: float
    lower_triangle_units: float
    diagonal_units: float
    asymmetry_ratio: float

    @computed_field  # type: ignore[misc]
    @property
    def dimension(self) -> int:
        return len(self.categories)

    @model_validator(mode="after")
    def check_square(self) -> "PresenceMatrix":
        n = len(self.categories)
        if len(self.cells) != n or any(len(row) != n for row in self.cells):
            raise ValueError(f"presence matrix must be {n}x{n}")
        return self


class GradeBoundary(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    grade: str
    max_units: float = Field(ge=0)


DEFAULT_GRADE_BOUNDARIES: Tuple[GradeBoundary, ...] = (
    GradeBoundary(grade="A", max_units=500),
    GradeBoundary(grade="B", max_units=1500),
    GradeBoundary(grade="C", max_units=3000),
    GradeBoundary(grade="D", max_units=math.inf),
)


class TrustDebtResult(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    total_units: float = Field(ge=0)
    grade: str
    upper_triangle_units: float
    lower_triangle_units: float
    diagonal_units: float
    asymmetry_ratio: float
    boundaries: List[GradeBoundary]
    trajectory: Optional[Trajectory] = None
    previous_total_units: Optional[float] = None

    @model_validator(mode="after")
    def check_total_is_sum(self) -> "TrustDebtResult":
        parts = self.upper_triangle_units + self.lower_triangle_units + self.diagonal_units
        if not math.isclose(self.total_units, parts, rel_tol=1e-9, abs_tol=1e-9):
            raise ValueError(f"total_units {self.total_units} != triangle sum {parts}")
        return self


class EngineConfig(BaseModel):
    """Numeric knobs for one run. Defaults are a calibration starting point."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    reject_threshold: float = Field(default=0.3, ge=0, le=1)
    warn_threshold: float = Field(default=0.1, ge=0, le=1)
    min_share: float = Field(default=0.02, ge=0, le=1)
    max_share: float = Field(default=0.40, ge=0, le=1)
    max_iterations: int = Field(default=10, ge=0, le=1000)
    depth_penalty: float = Field(default=0.5, ge=0)
    diagonal_boost: float = Field(default=2.0, ge=0)
    visibility_scale: float = Field(default=100.0, gt=0)
    grade_boundaries: List[GradeBoundary] = Field(
        default_factory=lambda: list(DEFAULT_GRADE_BOUNDARIES)
    )
    trajectory_noise: float = Field(default=0.05, ge=0, le=1)

    @model_validator(mode="after")
    def check_ranges(self) -> "EngineConfig":
        if self.warn_threshold > self.reject_threshold:
            raise ValueError("warn_threshold must be <= reject_threshold")
        if self.min_share >= self.max_share:
            raise ValueError("min_share must be < max_share")
        return self


class BalancePass(BaseModel):
    model_config = ConfigDict(frozen=True)

    iteration: int
    orthogonality_score: float
    coverage_score: float
    splits: List[str] = Field(default_factory=list)
    merges: List[str] = Field(default_factory=list)
    reassignments: List[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.splits or self.merges or self.reassignments)


class BalanceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: Tuple[Category, ...]
    report: OrthogonalityReport
    passes: int
    unresolved: bool
    history: List[BalancePass] = Field(default_factory=list)


class ReportMeta(BaseModel):
    run_id: str
    timestamp_utc: datetime
    engine_version: str = ENGINE_VERSION


class BalanceSummary(BaseModel):
    passes: int
    unresolved: bool
    history: List[BalancePass] = Field(default_factory=list)


class TrustDebtReport(BaseModel):
    model_config = ConfigDict(ser_json_inf_nan="constants")

    meta: ReportMeta
    categories: List[Category]
    matrix: PresenceMatrix
    result: TrustDebtResult
    orthogonality: OrthogonalityReport
    balance: BalanceSummary
    warnings: List[str] = Field(default_factory=list)
