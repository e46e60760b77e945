from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, DateTime, Text, Uuid, JSON, func
from sqlalchemy.dialects.postgresql import JSONB
from picfight.db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

DEFAULT_MAX_IMAGE_SIZE = 5 * 1024 * 1024
DEFAULT_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif"]

class Board(Base):
    __tablename__ = "boards"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    created_by: Mapped[str] = mapped_column(String(320), index=True, nullable=False)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allowed_emails: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    max_submissions_per_user: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    submission_frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="unlimited")  # daily|weekly|monthly|unlimited

    contest_type: Mapped[str] = mapped_column(String(32), nullable=False, default="general")
    contest_prompt: Mapped[str | None] = mapped_column(Text())
    judging_criteria: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    max_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    allow_image_submissions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_image_size: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_MAX_IMAGE_SIZE)
    allowed_image_types: Mapped[list] = mapped_column(JSONType, nullable=False, default=lambda: list(DEFAULT_IMAGE_TYPES))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
