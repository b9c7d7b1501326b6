from __future__ import annotations

"""Schema constants and Pydantic models for Parquet-backed session results."""

from datetime import datetime, timezone
from typing import Literal

import pandas as pd
from pandas.api.types import CategoricalDtype
from pydantic import BaseModel, Field, field_validator, model_validator

from ..models import SessionResult

# --- Constants ---

COMPLEXITIES = {"Simple", "Complex"}
PACINGS = {"Normal", "Fast"}
TLX_KEYS = ["mental_demand", "performance", "effort", "frustration"]


def _cat_dtype(categories: set[str]) -> CategoricalDtype:
    return CategoricalDtype(categories=sorted(categories), ordered=False)


DTYPES = {
    "session_id": "string",
    # timezone-aware UTC timestamps
    "finished_at": pd.DatetimeTZDtype(tz="UTC"),
    "participant_id": "string",
    "topic": "string",
    "complexity": _cat_dtype(COMPLEXITIES),
    "pacing": _cat_dtype(PACINGS),
    "quiz_total": "UInt16",
    "quiz_score": "UInt16",
    "quiz_skipped": "UInt16",
    "interruptions": "UInt16",
    "mental_demand": "UInt8",
    "performance": "UInt8",
    "effort": "UInt8",
    "frustration": "UInt8",
}


# --- Pydantic models ---

class SessionResultRow(BaseModel):
    session_id: str
    finished_at: datetime
    participant_id: str = ""
    topic: str
    complexity: Literal["Simple", "Complex"]
    pacing: Literal["Normal", "Fast"]
    quiz_total: int = Field(ge=0, le=65535)
    quiz_score: int = Field(ge=0, le=65535)
    quiz_skipped: int = Field(default=0, ge=0, le=65535)
    interruptions: int = Field(default=0, ge=0, le=65535)
    mental_demand: int = Field(ge=0, le=100)
    performance: int = Field(ge=0, le=100)
    effort: int = Field(ge=0, le=100)
    frustration: int = Field(ge=0, le=100)

    @model_validator(mode="after")
    def _counts_consistent(self) -> "SessionResultRow":
        if self.quiz_score + self.quiz_skipped > self.quiz_total:
            raise ValueError("quiz_score + quiz_skipped must be <= quiz_total")
        return self

    @field_validator("finished_at")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @classmethod
    def from_result(
        cls,
        result: SessionResult,
        *,
        session_id: str,
        finished_at: datetime,
        participant_id: str = "",
        interruptions: int = 0,
    ) -> "SessionResultRow":
        rating = result.workload_rating
        return cls(
            session_id=session_id,
            finished_at=finished_at,
            participant_id=participant_id,
            topic=result.configuration.topic,
            complexity=result.configuration.complexity.value,
            pacing=result.configuration.pacing.value,
            quiz_total=result.quiz_total,
            quiz_score=result.quiz_score,
            quiz_skipped=sum(1 for a in result.answers if a < 0),
            interruptions=interruptions,
            mental_demand=rating.mental_demand,
            performance=rating.performance,
            effort=rating.effort,
            frustration=rating.frustration,
        )
