from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, Index, Uuid
from picfight.db import Base
from picfight.models.board import JSONType


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    board_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("boards.id"), index=True, nullable=False
    )
    owner_email: Mapped[str] = mapped_column(String(320), index=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(8), nullable=False)  # 'text' | 'image'
    # Always set by the writer (UTC), never by the database clock
    submission_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    prompt: Mapped[str | None] = mapped_column(Text(), nullable=True)
    context: Mapped[str | None] = mapped_column(Text(), nullable=True)

    image_key: Mapped[str | None] = mapped_column(Text(), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text(), nullable=True)
    image_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    image_metadata: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text(), nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text(), nullable=True)
    risks: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    recommendations: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    scores: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    judge_response: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # No unique constraint on (board, owner): the quota race is accepted
    __table_args__ = (
        Index("ix_submissions_board_owner_date", "board_id", "owner_email", "submission_date"),
    )
