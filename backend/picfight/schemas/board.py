from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, List
from uuid import UUID
from datetime import datetime

SubmissionFrequency = Literal["daily", "weekly", "monthly", "unlimited"]
ContestType = Literal["photography", "art", "design", "document", "general"]
BoardStateName = Literal["active", "inactive", "expired"]

class BoardCreate(BaseModel):
    name: str = Field(min_length=3, max_length=120)
    description: str | None = None
    is_public: bool = True
    allowed_emails: List[str] = Field(default_factory=list)
    is_active: bool = True
    expires_at: datetime | None = None
    max_submissions_per_user: int = Field(ge=1, default=2)
    submission_frequency: SubmissionFrequency = "unlimited"
    contest_type: ContestType = "general"
    contest_prompt: str | None = None
    judging_criteria: List[str] = Field(default_factory=list)
    max_score: int = Field(ge=1, default=100)
    allow_image_submissions: bool = False
    max_image_size: int = Field(ge=1, default=5 * 1024 * 1024)
    allowed_image_types: List[str] = Field(default_factory=lambda: ["image/jpeg", "image/png", "image/gif"])

    @field_validator("allowed_emails")
    @classmethod
    def normalize_emails(cls, v: list[str]):
        return [e.strip() for e in v if e and e.strip()]

class BoardUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=120)
    description: str | None = None
    is_public: bool | None = None
    allowed_emails: List[str] | None = None
    is_active: bool | None = None
    expires_at: datetime | None = None
    max_submissions_per_user: int | None = Field(default=None, ge=1)
    submission_frequency: SubmissionFrequency | None = None
    contest_type: ContestType | None = None
    contest_prompt: str | None = None
    judging_criteria: List[str] | None = None
    max_score: int | None = Field(default=None, ge=1)
    allow_image_submissions: bool | None = None
    max_image_size: int | None = Field(default=None, ge=1)
    allowed_image_types: List[str] | None = None

class BoardPublic(BaseModel):
    id: UUID
    name: str
    description: str | None
    created_by: str
    is_public: bool
    is_active: bool
    expires_at: datetime | None
    max_submissions_per_user: int
    submission_frequency: str
    contest_type: str
    contest_prompt: str | None
    judging_criteria: List[str]
    max_score: int
    allow_image_submissions: bool
    max_image_size: int
    allowed_image_types: List[str]
    created_at: datetime | None = None
    # Derived per request:
    state: BoardStateName
    status_badge: str
    expires_in: str | None = None
    is_owner: bool = False
