from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import structlog
from picfight.db import get_session
from picfight.auth_deps import get_current_identity, get_authorization_policy
from picfight.config import settings
from picfight.models.board import Board
from picfight.schemas.board import BoardCreate, BoardUpdate, BoardPublic
from picfight.schemas.submission import QuotaPublic
from picfight.services.access import AuthorizationPolicy, can_access_board
from picfight.services.lifecycle import board_state, expiration_info, status_badge
from picfight.services.quota import check_quota, check_frequency
from picfight.services.store import SubmissionStore

router = APIRouter(prefix="/boards", tags=["boards"])
log = structlog.get_logger()

def to_public(b: Board, identity: str, now: datetime) -> BoardPublic:
    return BoardPublic(
        id=b.id, name=b.name, description=b.description, created_by=b.created_by,
        is_public=b.is_public, is_active=b.is_active, expires_at=b.expires_at,
        max_submissions_per_user=b.max_submissions_per_user,
        submission_frequency=b.submission_frequency,
        contest_type=b.contest_type, contest_prompt=b.contest_prompt,
        judging_criteria=list(b.judging_criteria or []), max_score=b.max_score,
        allow_image_submissions=b.allow_image_submissions, max_image_size=b.max_image_size,
        allowed_image_types=list(b.allowed_image_types or []),
        created_at=b.created_at,
        state=board_state(b, now).value,
        status_badge=status_badge(b, now),
        expires_in=expiration_info(b, now),
        is_owner=(b.created_by or "").lower() == identity,
    )

async def load_visible_board(store: SubmissionStore, board_id: str, identity: str, policy: AuthorizationPolicy) -> Board:
    """404 for missing or deleted boards, 403 when the caller may not see it."""
    board = await store.get_board(board_id)
    if board is None or board.is_deleted:
        raise HTTPException(status_code=404, detail="Board not found")
    if not (can_access_board(board, identity) or policy.can_manage_board(board, identity)):
        raise HTTPException(status_code=403, detail="You do not have access to this board")
    return board

@router.get("", response_model=list[BoardPublic])
async def list_boards(
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
):
    now = datetime.now(dt_tz.utc)
    boards = await SubmissionStore(session).list_boards()
    return [
        to_public(b, identity, now) for b in boards
        if can_access_board(b, identity) or policy.can_manage_board(b, identity)
    ]

@router.post("", response_model=BoardPublic, status_code=201)
async def create_board(
    payload: BoardCreate,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
):
    if not policy.can_create_board(identity):
        raise HTTPException(status_code=403, detail="Only administrators can create boards")
    board = Board(created_by=identity, is_deleted=False, **payload.model_dump())
    board = await SubmissionStore(session).create_board(board)
    log.info("board_created", board_id=str(board.id), created_by=identity)
    return to_public(board, identity, datetime.now(dt_tz.utc))

@router.get("/{board_id}", response_model=BoardPublic)
async def get_board(
    board_id: str,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
):
    board = await load_visible_board(SubmissionStore(session), board_id, identity, policy)
    return to_public(board, identity, datetime.now(dt_tz.utc))

@router.patch("/{board_id}", response_model=BoardPublic)
async def update_board(
    board_id: str,
    payload: BoardUpdate,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
):
    store = SubmissionStore(session)
    board = await load_visible_board(store, board_id, identity, policy)
    if not policy.can_manage_board(board, identity):
        raise HTTPException(status_code=403, detail="Only the board creator or an administrator can edit this board")
    changes = payload.model_dump(exclude_unset=True)
    # Non-nullable columns: an explicit null means "leave as is"
    changes = {k: v for k, v in changes.items() if v is not None or k in ("description", "expires_at", "contest_prompt")}
    board = await store.update_board(board, **changes)
    log.info("board_updated", board_id=str(board.id), fields=sorted(changes))
    return to_public(board, identity, datetime.now(dt_tz.utc))

@router.delete("/{board_id}", status_code=204)
async def delete_board(
    board_id: str,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
):
    store = SubmissionStore(session)
    board = await load_visible_board(store, board_id, identity, policy)
    if not policy.can_manage_board(board, identity):
        raise HTTPException(status_code=403, detail="Only the board creator or an administrator can delete this board")
    marked = await store.soft_delete_board(board)
    log.info("board_deleted", board_id=board_id, submissions_marked=marked)

@router.get("/{board_id}/quota", response_model=QuotaPublic)
async def my_quota(
    board_id: str,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
):
    store = SubmissionStore(session)
    board = await load_visible_board(store, board_id, identity, policy)
    quota = await check_quota(store, board.id, identity, board=board)
    freq = await check_frequency(store, board, identity, datetime.now(dt_tz.utc), settings.board_timezone)
    return QuotaPublic(
        board_id=board.id,
        can_submit=quota.can_submit and freq.allowed,
        current_count=quota.current_count,
        max_allowed=quota.max_allowed,
        frequency=freq.frequency,
        frequency_allowed=freq.allowed,
        window_count=freq.window_count,
        window_start=freq.window_start,
    )
