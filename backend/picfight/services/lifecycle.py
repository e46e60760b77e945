from __future__ import annotations
from datetime import datetime
from enum import Enum
from picfight.models.board import Board
from picfight.services.time_windows import as_utc


class BoardState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


def board_state(board: Board, now: datetime) -> BoardState:
    # Always evaluated with a fresh `now` at submission time, never cached
    if not board.is_active or board.is_deleted:
        return BoardState.INACTIVE
    expires_at = as_utc(board.expires_at)
    if expires_at is not None and expires_at <= as_utc(now):
        return BoardState.EXPIRED
    return BoardState.ACTIVE


def expiration_info(board: Board, now: datetime) -> str | None:
    """Human-readable time left: '2d 3h left', '5h left', '12m left' or 'Expired'."""
    expires_at = as_utc(board.expires_at)
    if expires_at is None:
        return None
    left = (expires_at - as_utc(now)).total_seconds()
    if left <= 0:
        return "Expired"
    days = int(left // 86400)
    hours = int((left % 86400) // 3600)
    if days > 0:
        return f"{days}d {hours}h left"
    if hours > 0:
        return f"{hours}h left"
    minutes = int((left % 3600) // 60)
    return f"{minutes}m left"


def status_badge(board: Board, now: datetime) -> str:
    state = board_state(board, now)
    if state is BoardState.INACTIVE:
        return "Inactive"
    if state is BoardState.EXPIRED:
        return "Expired"
    return "Public" if board.is_public else "Private"
