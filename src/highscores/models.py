"""Data models for high scores service."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
)

# Total number of quiz items; a perfect run scores MAX_SCORE.
MAX_SCORE = 12
MAX_NAME_LENGTH = 100
DEFAULT_TOP_N = 10


def score_percentage(score: int) -> int:
    """Return the score as a whole percentage of MAX_SCORE, rounding halves up."""
    ratio = Decimal(score) * 100 / MAX_SCORE
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def describe_validation_error(error: ValidationError) -> str:
    """Reduce a pydantic error to the short reason reported to callers."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "request"
    if first["type"] == "missing":
        return f"missing {field}"
    if first["type"] == "value_error":
        return str(first["ctx"]["error"])
    return f"{field}: {first['msg']}"


class ScoreSubmission(BaseModel):
    """Model for score submission requests."""

    name: str = Field(
        ..., max_length=MAX_NAME_LENGTH, description="Name shown on the leaderboard"
    )
    score: int = Field(..., description="Number of correct answers")

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        """Trim the name and reject blank values."""
        if not isinstance(v, str) or not v.strip():
            raise ValueError("missing name")
        return v.strip()

    @field_validator("score", mode="before")
    @classmethod
    def validate_score(cls, v: Any) -> int:
        """Accept whole numbers within [0, MAX_SCORE]."""
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("score must be an integer")
        if not 0 <= v <= MAX_SCORE:
            raise ValueError("score out of range")
        return v


class ScoreRecord(BaseModel):
    """Model for stored score records.

    Records are immutable once created. ``percentage`` is always derived from
    ``score``; any persisted value is ignored on load and recomputed.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    score: int = Field(..., ge=0, le=MAX_SCORE, strict=True)
    created_at: AwareDatetime = Field(..., alias="createdAt")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Stored names are already trimmed."""
        if v != v.strip():
            raise ValueError("name must be trimmed")
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> int:
        return score_percentage(self.score)

    def to_response(self) -> dict[str, Any]:
        """Serialize with the public field names."""
        return self.model_dump(mode="json", by_alias=True)

    @property
    def rank_key(self) -> tuple[int, datetime]:
        """Sort key: higher score first, then earlier submission."""
        return (-self.score, self.created_at)
