from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class TextSubmissionCreate(BaseModel):
    prompt: str = Field(min_length=1, max_length=10_000)
    context: str | None = Field(default=None, max_length=10_000)


class SubmissionPublic(BaseModel):
    id: UUID
    board_id: UUID
    owner_email: str
    kind: str
    submission_date: datetime
    prompt: str | None = None
    context: str | None = None
    # 🔒 do not expose storage keys
    image_url: str | None = None
    image_size: int | None = None
    image_type: str | None = None
    image_metadata: dict = Field(default_factory=dict)
    rating: int | None = None
    summary: str | None = None
    reasoning: str | None = None
    risks: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    scores: dict | None = None
    is_processed: bool


class QuotaPublic(BaseModel):
    board_id: UUID
    can_submit: bool
    current_count: int
    max_allowed: int
    frequency: str
    frequency_allowed: bool
    window_count: int
    window_start: datetime | None = None
