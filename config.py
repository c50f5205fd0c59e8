"""
Configuration management using Pydantic Settings.
Validates all environment variables at startup for fail-fast behavior.
"""

import math
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from core.trust_debt.models import EngineConfig, GradeBoundary


def parse_grade_boundaries(raw: str) -> List[GradeBoundary]:
    """Parse "A:500,B:1500,C:3000,D:inf" into an ascending boundary table."""
    table: List[GradeBoundary] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        grade, _, limit = part.partition(":")
        if not grade.strip() or not limit.strip():
            raise ValueError(f"bad grade boundary entry {part!r} (expected GRADE:MAX)")
        max_units = math.inf if limit.strip().lower() in {"inf", "infinity"} else float(limit)
        table.append(GradeBoundary(grade=grade.strip(), max_units=max_units))
    if not table:
        raise ValueError("GRADE_BOUNDARIES is empty")
    for prev, nxt in zip(table, table[1:]):
        if not nxt.max_units > prev.max_units:
            raise ValueError("GRADE_BOUNDARIES must be strictly ascending")
    if not math.isinf(table[-1].max_units):
        raise ValueError("last GRADE_BOUNDARIES entry must be inf")
    return table


class Settings(BaseSettings):
    """Application settings with validation."""

    # Orthogonality gate
    ORTHOGONALITY_REJECT_THRESHOLD: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Pairs with |r| above this are flagged"
    )
    ORTHOGONALITY_WARN_THRESHOLD: float = Field(
        default=0.1,
        ge=0,
        le=1,
        description="Pairs with |r| above this (and not flagged) are warnings"
    )

    # Coverage band
    MIN_CATEGORY_SHARE: float = Field(
        default=0.02,
        ge=0,
        le=1,
        description="Share of signal mass below which a category is underutilized"
    )
    MAX_CATEGORY_SHARE: float = Field(
        default=0.40,
        ge=0,
        le=1,
        description="Share of signal mass above which a category is overloaded"
    )

    # Balancer
    BALANCER_MAX_ITERATIONS: int = Field(
        default=10,
        ge=0,
        le=1000,
        description="Upper bound on balancing passes"
    )

    # Matrix weighting
    DEPTH_PENALTY_COEFFICIENT: float = Field(
        default=0.5,
        ge=0,
        description="debt x (1 + coeff x max depth)"
    )
    DIAGONAL_BOOST: float = Field(
        default=2.0,
        ge=0,
        description="Multiplier for diagonal cells"
    )
    VISIBILITY_SCALE: float = Field(
        default=100.0,
        gt=0,
        description="Multiplier applied to presence tables"
    )

    # Grading
    GRADE_BOUNDARIES: str = Field(
        default="A:500,B:1500,C:3000,D:inf",
        description="Ascending GRADE:MAX_UNITS list; last entry must be inf"
    )
    TRAJECTORY_NOISE_FRACTION: float = Field(
        default=0.05,
        ge=0,
        le=1,
        description="Run-to-run change treated as stable, as a fraction of the prior total"
    )

    # Frontend settings
    FRONTEND_ORIGIN: str = Field(
        default="http://localhost:3000",
        description="Frontend origin for CORS (no wildcard allowed)"
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v_upper

    @field_validator("ORTHOGONALITY_WARN_THRESHOLD")
    @classmethod
    def validate_warn_lte_reject(cls, v: float, info) -> float:
        """Ensure warn threshold <= reject threshold."""
        if "ORTHOGONALITY_REJECT_THRESHOLD" in info.data and v > info.data["ORTHOGONALITY_REJECT_THRESHOLD"]:
            raise ValueError("ORTHOGONALITY_WARN_THRESHOLD must be <= ORTHOGONALITY_REJECT_THRESHOLD")
        return v

    @field_validator("MAX_CATEGORY_SHARE")
    @classmethod
    def validate_max_share_gt_min(cls, v: float, info) -> float:
        """Ensure max share > min share."""
        if "MIN_CATEGORY_SHARE" in info.data and v <= info.data["MIN_CATEGORY_SHARE"]:
            raise ValueError("MAX_CATEGORY_SHARE must be > MIN_CATEGORY_SHARE")
        return v

    @field_validator("FRONTEND_ORIGIN")
    @classmethod
    def validate_no_wildcard_origin(cls, v: str) -> str:
        """Prevent wildcard CORS origin."""
        if v == "*":
            raise ValueError(
                "FRONTEND_ORIGIN cannot be '*' (wildcard). "
                "Set explicit origin or leave unset for localhost:3000 default."
            )
        return v

    @field_validator("GRADE_BOUNDARIES")
    @classmethod
    def validate_grade_boundaries(cls, v: str) -> str:
        """Fail at startup on an unusable boundary table."""
        parse_grade_boundaries(v)
        return v

    @property
    def engine_config(self) -> EngineConfig:
        """Per-run engine configuration built from these settings."""
        return EngineConfig(
            reject_threshold=self.ORTHOGONALITY_REJECT_THRESHOLD,
            warn_threshold=self.ORTHOGONALITY_WARN_THRESHOLD,
            min_share=self.MIN_CATEGORY_SHARE,
            max_share=self.MAX_CATEGORY_SHARE,
            max_iterations=self.BALANCER_MAX_ITERATIONS,
            depth_penalty=self.DEPTH_PENALTY_COEFFICIENT,
            diagonal_boost=self.DIAGONAL_BOOST,
            visibility_scale=self.VISIBILITY_SCALE,
            grade_boundaries=parse_grade_boundaries(self.GRADE_BOUNDARIES),
            trajectory_noise=self.TRAJECTORY_NOISE_FRACTION,
        )


# Global settings instance
settings = Settings()
