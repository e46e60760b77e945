from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from picfight.models.board import Board
from picfight.models.submission import Submission


def parse_id(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class SubmissionStore:
    """
    Boards and submissions persisted through SQLAlchemy.

    Every write commits on its own; there is no check-and-insert primitive,
    callers re-read counts immediately before writing instead.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # --- boards ---
    async def get_board(self, board_id: Any) -> Board | None:
        bid = parse_id(board_id)
        if bid is None:
            return None
        return await self.session.get(Board, bid)

    async def list_boards(self, include_deleted: bool = False) -> list[Board]:
        q = select(Board)
        if not include_deleted:
            q = q.where(Board.is_deleted.is_(False))
        q = q.order_by(Board.created_at.desc())
        return list((await self.session.execute(q)).scalars().all())

    async def create_board(self, board: Board) -> Board:
        self.session.add(board)
        await self.session.commit()
        await self.session.refresh(board)
        return board

    async def update_board(self, board: Board, **fields: Any) -> Board:
        for key, value in fields.items():
            setattr(board, key, value)
        await self.session.commit()
        await self.session.refresh(board)
        return board

    async def soft_delete_board(self, board: Board) -> int:
        """Retire the board and soft-delete its submissions. Returns how many were marked."""
        board.is_deleted = True
        board.is_active = False
        result = await self.session.execute(
            update(Submission)
            .where(Submission.board_id == board.id, Submission.is_deleted.is_(False))
            .values(is_deleted=True)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.commit()
        return int(result.rowcount or 0)

    # --- submissions ---
    async def get_submission(self, submission_id: Any) -> Submission | None:
        sid = parse_id(submission_id)
        if sid is None:
            return None
        return await self.session.get(Submission, sid)

    def _filtered(self, q, board_id: uuid.UUID, owner: str | None, since: datetime | None, exclude_deleted: bool):
        q = q.where(Submission.board_id == board_id)
        if owner is not None:
            q = q.where(Submission.owner_email == owner)
        if since is not None:
            q = q.where(Submission.submission_date >= since)
        if exclude_deleted:
            q = q.where(Submission.is_deleted.is_(False))
        return q

    async def list_submissions(
        self,
        board_id: Any,
        owner: str | None = None,
        since: datetime | None = None,
        exclude_deleted: bool = True,
    ) -> list[Submission]:
        bid = parse_id(board_id)
        if bid is None:
            return []
        q = self._filtered(select(Submission), bid, owner, since, exclude_deleted)
        q = q.order_by(Submission.submission_date.desc())
        return list((await self.session.execute(q)).scalars().all())

    async def count_submissions(self, board_id: Any, owner: str, since: datetime | None = None) -> int:
        """Non-deleted submissions of both kinds for (board, owner), optionally since an instant."""
        bid = parse_id(board_id)
        if bid is None:
            return 0
        q = self._filtered(select(func.count(Submission.id)), bid, owner, since, True)
        return int(await self.session.scalar(q) or 0)

    async def create_submission(self, submission: Submission) -> Submission:
        self.session.add(submission)
        await self.session.commit()
        await self.session.refresh(submission)
        return submission

    async def update_submission(self, submission_id: Any, **fields: Any) -> Submission:
        sub = await self.get_submission(submission_id)
        if sub is None:
            raise LookupError(f"Submission not found: {submission_id}")
        for key, value in fields.items():
            setattr(sub, key, value)
        await self.session.commit()
        await self.session.refresh(sub)
        return sub

    async def soft_delete_submission(self, submission_id: Any) -> Submission:
        return await self.update_submission(submission_id, is_deleted=True)
