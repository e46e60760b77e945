from __future__ import annotations
import math
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator
from typing import Any, Literal, List
from datetime import datetime


class ScoringCriteria(BaseModel):
    creativity: int = Field(ge=0, le=100)
    technical: int = Field(ge=0, le=100)
    composition: int = Field(ge=0, le=100)
    relevance: int = Field(ge=0, le=100)
    originality: int = Field(ge=0, le=100)
    overall: int = Field(ge=0, le=100)


# Judge responses are not guaranteed to carry any of these fields;
# every extraction rule reads them as optional.
class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class DetectedObject(_Lenient):
    label: str | None = Field(default=None, validation_alias=AliasChoices("label", "name"))
    confidence: float | None = None

    @field_validator("label", mode="before")
    @classmethod
    def label_text(cls, v: Any):
        return str(v) if v is not None else None

    @field_validator("confidence", mode="before")
    @classmethod
    def numeric_confidence(cls, v: Any):
        if isinstance(v, bool):
            return None
        try:
            f = float(v)
        except (TypeError, ValueError, OverflowError):
            return None
        return f if math.isfinite(f) else None


class TechnicalAnalysis(_Lenient):
    quality: Literal["high", "medium", "low"] | None = None

    @field_validator("quality", mode="before")
    @classmethod
    def lower_quality(cls, v: Any):
        if isinstance(v, str):
            v = v.strip().lower()
            return v if v in ("high", "medium", "low") else None
        return None


class CompositionAnalysis(_Lenient):
    rule_of_thirds: bool = Field(default=False, validation_alias=AliasChoices("ruleOfThirds", "rule_of_thirds"))
    symmetry: bool = False
    leading_lines: bool = Field(default=False, validation_alias=AliasChoices("leadingLines", "leading_lines"))

    @field_validator("rule_of_thirds", "symmetry", "leading_lines", mode="before")
    @classmethod
    def flag(cls, v: Any):
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)


class SceneAnalysis(_Lenient):
    mood: str | None = None
    setting: str | None = None

    @field_validator("mood", "setting", mode="before")
    @classmethod
    def text_only(cls, v: Any):
        return v if isinstance(v, str) else None


class JudgeAnalysis(_Lenient):
    objects: List[DetectedObject] | None = None
    technical: TechnicalAnalysis | None = None
    composition: CompositionAnalysis | None = None
    scene: SceneAnalysis | None = None
    tags: List[str] | None = None
    summary: str | None = None
    reasoning: str | None = None
    risks: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @field_validator("tags", "risks", "recommendations", mode="before")
    @classmethod
    def strings_only(cls, v: Any):
        if v is None:
            return v
        if not isinstance(v, list):
            return []
        return [str(item) for item in v if isinstance(item, (str, int, float))]

    @field_validator("risks", "recommendations", mode="before")
    @classmethod
    def never_none(cls, v: Any):
        return [] if v is None else v

    @field_validator("objects", mode="before")
    @classmethod
    def objects_only(cls, v: Any):
        if v is None:
            return v
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @field_validator("technical", "composition", "scene", mode="before")
    @classmethod
    def mapping_only(cls, v: Any):
        return v if isinstance(v, dict) else None

    @field_validator("summary", "reasoning", mode="before")
    @classmethod
    def text_only(cls, v: Any):
        if v is None:
            return None
        return v if isinstance(v, str) else str(v)


class ImageScoringResult(BaseModel):
    success: bool
    score: ScoringCriteria | None = None
    analysis: dict | None = None
    raw_response: Any = None
    error: str | None = None
    processing_time_ms: int | None = None
    contest_id: str
    submission_id: str | None = None
    user_id: str
    timestamp: datetime


class ImageMetadata(BaseModel):
    file_name: str
    file_size: int
    file_type: str
    last_modified: datetime
    device_make: str | None = None
    device_model: str | None = None
    software: str | None = None
    width: int | None = None
    height: int | None = None
    orientation: Literal["landscape", "portrait", "square", "unknown"] = "unknown"
    is_recent: bool = False
    is_from_camera: bool = False
    validation_score: int = Field(default=0, ge=0, le=100)


class ContestValidation(BaseModel):
    is_valid: bool
    points: int
    reasons: List[str] = Field(default_factory=list)
    validation_score: int
