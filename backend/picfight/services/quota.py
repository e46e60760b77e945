from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from picfight.models.board import Board
from picfight.services.store import SubmissionStore
from picfight.services.time_windows import window_start, as_utc

# Applied only when the board record cannot be read
FALLBACK_MAX_SUBMISSIONS = 2

FREQUENCY_LABELS = {"daily": "today", "weekly": "this week", "monthly": "this month"}


@dataclass(frozen=True)
class QuotaStatus:
    can_submit: bool
    current_count: int
    max_allowed: int


@dataclass(frozen=True)
class FrequencyStatus:
    allowed: bool
    frequency: str
    window_count: int
    max_allowed: int
    window_start: datetime | None


def max_allowed_for(board: Board | None) -> int:
    # 0 is a real cap (no submissions at all); only a missing value falls back
    if board is None or board.max_submissions_per_user is None:
        return FALLBACK_MAX_SUBMISSIONS
    return int(board.max_submissions_per_user)


async def check_quota(store: SubmissionStore, board_id, owner: str, board: Board | None = None) -> QuotaStatus:
    """
    Lifetime cap: non-deleted text + image submissions of `owner` on the board.
    Independent of the frequency window; both must pass.
    """
    if board is None:
        board = await store.get_board(board_id)
    current = await store.count_submissions(board_id, owner)
    max_allowed = max_allowed_for(board)
    return QuotaStatus(can_submit=current < max_allowed, current_count=current, max_allowed=max_allowed)


async def check_frequency(store: SubmissionStore, board: Board, owner: str, now: datetime, tz_name: str = "UTC") -> FrequencyStatus:
    """
    Per-window cap, reusing max_submissions_per_user as the window limit.
    Window is [window_start, now]; unlimited boards have no window.
    """
    frequency = board.submission_frequency or "unlimited"
    max_allowed = max_allowed_for(board)
    start = window_start(frequency, as_utc(now), tz_name)
    if start is None:
        return FrequencyStatus(allowed=True, frequency=frequency, window_count=0, max_allowed=max_allowed, window_start=None)
    count = await store.count_submissions(board.id, owner, since=start)
    return FrequencyStatus(
        allowed=count < max_allowed,
        frequency=frequency,
        window_count=count,
        max_allowed=max_allowed,
        window_start=start,
    )
