from __future__ import annotations
import asyncio
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File, Form, Response
from sqlalchemy.ext.asyncio import AsyncSession
import structlog
from picfight.db import get_session
from picfight.auth_deps import get_current_identity, get_authorization_policy, get_judge, get_storage, get_throttle
from picfight.config import settings
from picfight.models.submission import Submission
from picfight.routes.boards import load_visible_board
from picfight.schemas.submission import SubmissionPublic, TextSubmissionCreate
from picfight.services.access import AuthorizationPolicy
from picfight.services.judge_client import Judge
from picfight.services.orchestrator import (
    SubmissionOrchestrator, SubmissionOutcome, FailureKind, ImageUpload,
)
from picfight.services.storage import ObjectStorage
from picfight.services.store import SubmissionStore
from picfight.services.throttle import SubmitThrottle

router = APIRouter(tags=["submissions"])
log = structlog.get_logger()

# Upper bound on what we read from an upload; boards set their own lower limit
MAX_UPLOAD_BYTES = 25 * 1024 * 1024

STATUS_FOR_FAILURE = {
    FailureKind.POLICY_DENIED: 403,
    FailureKind.QUOTA_EXCEEDED: 409,
    FailureKind.FREQUENCY_EXCEEDED: 429,
    FailureKind.THROTTLED: 429,
    FailureKind.VALIDATION_FAILED: 422,
    FailureKind.JUDGE_FAILURE: 502,
    FailureKind.INVARIANT_VIOLATION: 404,
}

def get_orchestrator(
    session: AsyncSession = Depends(get_session),
    judge: Judge = Depends(get_judge),
    storage: ObjectStorage = Depends(get_storage),
    throttle: SubmitThrottle = Depends(get_throttle),
) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        SubmissionStore(session),
        judge,
        throttle,
        object_storage=storage,
        tz_name=settings.board_timezone,
        recent_window_minutes=settings.image_recent_window_minutes,
    )

async def to_public(s: Submission, storage: ObjectStorage | None = None) -> SubmissionPublic:
    image_url = s.image_url
    if s.image_key and storage is not None:
        try:
            image_url = await asyncio.to_thread(storage.presign_get, s.image_key)
        except Exception as e:
            # Listing still works without a link
            log.warning("presign_failed", submission_id=str(s.id), error=str(e))
    return SubmissionPublic(
        id=s.id, board_id=s.board_id, owner_email=s.owner_email, kind=s.kind,
        submission_date=s.submission_date, prompt=s.prompt, context=s.context,
        image_url=image_url, image_size=s.image_size, image_type=s.image_type,
        image_metadata=s.image_metadata or {},
        rating=s.rating, summary=s.summary, reasoning=s.reasoning,
        risks=list(s.risks or []), recommendations=list(s.recommendations or []),
        scores=s.scores, is_processed=s.is_processed,
    )

def raise_for_outcome(outcome: SubmissionOutcome) -> None:
    failure = outcome.failure
    if outcome.accepted or failure is None:
        return
    status = STATUS_FOR_FAILURE[failure.kind]
    if failure.kind is FailureKind.POLICY_DENIED and failure.details.get("policy") in ("inactive", "expired"):
        status = 409
    headers = None
    if failure.kind is FailureKind.THROTTLED:
        headers = {"Retry-After": str(failure.details.get("retry_after_seconds", 1))}
    detail = {"kind": failure.kind.value, "reason": failure.reason, **failure.details}
    raise HTTPException(status_code=status, detail=detail, headers=headers)

@router.post("/boards/{board_id}/submissions/text", response_model=SubmissionPublic, status_code=201)
async def submit_text(
    board_id: str,
    payload: TextSubmissionCreate,
    identity: str = Depends(get_current_identity),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.submit_text(board_id, identity, payload.prompt, payload.context)
    raise_for_outcome(outcome)
    return await to_public(outcome.submission)

@router.post("/boards/{board_id}/submissions/image", response_model=SubmissionPublic, status_code=201)
async def submit_image(
    board_id: str,
    file: UploadFile = File(...),
    last_modified: datetime | None = Form(default=None),
    identity: str = Depends(get_current_identity),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
):
    data = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")
    upload = ImageUpload(
        file_name=file.filename or "upload",
        data=data,
        last_modified=last_modified,
        declared_type=file.content_type,
    )
    outcome = await orchestrator.submit_image(board_id, identity, upload)
    raise_for_outcome(outcome)
    return await to_public(outcome.submission, orchestrator.object_storage)

@router.get("/boards/{board_id}/submissions", response_model=list[SubmissionPublic])
async def list_submissions(
    board_id: str,
    mine: int = Query(default=1, ge=0, le=1),
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
    storage: ObjectStorage = Depends(get_storage),
):
    store = SubmissionStore(session)
    board = await load_visible_board(store, board_id, identity, policy)
    if not mine and not policy.can_view_all_submissions(board, identity):
        raise HTTPException(status_code=403, detail="Only the board creator or an administrator can list all submissions")
    subs = await store.list_submissions(board.id, owner=identity if mine else None)
    return [await to_public(s, storage) for s in subs]

@router.delete("/submissions/{submission_id}", status_code=204)
async def delete_submission(
    submission_id: str,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
):
    store = SubmissionStore(session)
    sub = await store.get_submission(submission_id)
    if sub is None or sub.is_deleted:
        raise HTTPException(status_code=404, detail="Submission not found")
    if sub.owner_email != identity:
        board = await store.get_board(sub.board_id)
        if board is None or not policy.can_manage_board(board, identity):
            raise HTTPException(status_code=403, detail="Not allowed to delete this submission")
    await store.soft_delete_submission(sub.id)
    log.info("submission_deleted", submission_id=submission_id, by=identity)

@router.post("/submissions/{submission_id}/rescore", response_model=SubmissionPublic)
async def rescore_submission(
    submission_id: str,
    identity: str = Depends(get_current_identity),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.retry_scoring(submission_id, identity)
    raise_for_outcome(outcome)
    return await to_public(outcome.submission, orchestrator.object_storage)

@router.get("/submissions/{submission_id}/image")
async def get_submission_image(
    submission_id: str,
    session: AsyncSession = Depends(get_session),
    identity: str = Depends(get_current_identity),
    policy: AuthorizationPolicy = Depends(get_authorization_policy),
    storage: ObjectStorage = Depends(get_storage),
):
    """Stream the uploaded image to its owner or the board's managers."""
    store = SubmissionStore(session)
    sub = await store.get_submission(submission_id)
    if sub is None or sub.is_deleted:
        raise HTTPException(status_code=404, detail="Submission not found")
    if sub.owner_email != identity:
        board = await store.get_board(sub.board_id)
        if board is None or not policy.can_view_all_submissions(board, identity):
            raise HTTPException(status_code=403, detail="Not allowed to view this submission")
    if not sub.image_key:
        raise HTTPException(status_code=404, detail="No image associated with this submission")
    try:
        data, content_type = await asyncio.to_thread(storage.get_bytes, sub.image_key)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Image file not found in storage")
    return Response(content=data, media_type=content_type)
