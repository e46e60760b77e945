from __future__ import annotations
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_tz
from enum import Enum
from typing import Any, Callable
import structlog
from picfight.models.board import Board
from picfight.models.submission import Submission
from picfight.schemas.scoring import ContestValidation, ImageScoringResult, JudgeAnalysis
from picfight.services.access import can_access_board
from picfight.services.authenticity import build_metadata, validate_for_contest, describe_metadata, DEFAULT_RECENT_WINDOW_MINUTES
from picfight.services.judge_client import Judge
from picfight.services.judging import score_submission, rescale, score_description, format_scores
from picfight.services.lifecycle import BoardState, board_state
from picfight.services.media import inspect_image, ext_for_mime
from picfight.services.quota import check_quota, check_frequency, FREQUENCY_LABELS
from picfight.services.storage import ObjectStorage
from picfight.services.store import SubmissionStore
from picfight.services.throttle import SubmitThrottle
from picfight.services.time_windows import as_utc

log = structlog.get_logger()


class FailureKind(str, Enum):
    POLICY_DENIED = "policy_denied"
    QUOTA_EXCEEDED = "quota_exceeded"
    FREQUENCY_EXCEEDED = "frequency_exceeded"
    THROTTLED = "throttled"
    VALIDATION_FAILED = "validation_failed"
    JUDGE_FAILURE = "judge_failure"
    INVARIANT_VIOLATION = "invariant_violation"


class AttemptState(str, Enum):
    RECEIVED = "received"
    ACCESS_CHECKED = "access_checked"
    LIFECYCLE_CHECKED = "lifecycle_checked"
    QUOTA_CHECKED = "quota_checked"
    FREQUENCY_CHECKED = "frequency_checked"
    IMAGE_VALIDATED = "image_validated"
    SCORED = "scored"
    PERSISTED = "persisted"
    REJECTED = "rejected"


_TRANSITIONS: dict[AttemptState, set[AttemptState]] = {
    AttemptState.RECEIVED: {AttemptState.ACCESS_CHECKED},
    AttemptState.ACCESS_CHECKED: {AttemptState.LIFECYCLE_CHECKED},
    AttemptState.LIFECYCLE_CHECKED: {AttemptState.QUOTA_CHECKED},
    AttemptState.QUOTA_CHECKED: {AttemptState.FREQUENCY_CHECKED},
    AttemptState.FREQUENCY_CHECKED: {AttemptState.IMAGE_VALIDATED, AttemptState.SCORED},
    AttemptState.IMAGE_VALIDATED: {AttemptState.SCORED},
    AttemptState.SCORED: {AttemptState.PERSISTED},
    AttemptState.PERSISTED: set(),
    AttemptState.REJECTED: set(),
}
_TERMINAL = {AttemptState.PERSISTED, AttemptState.REJECTED}


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class SubmissionFailure:
    kind: FailureKind
    reason: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ImageUpload:
    file_name: str
    data: bytes
    # Client-reported modification time; EXIF capture time is used when absent
    last_modified: datetime | None = None
    declared_type: str | None = None


@dataclass
class SubmissionAttempt:
    """One submit (or rescore) attempt; every transition is checked and logged."""
    board_id: str
    owner: str
    kind: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: AttemptState = AttemptState.RECEIVED
    history: list[AttemptState] = field(default_factory=lambda: [AttemptState.RECEIVED])
    failure: SubmissionFailure | None = None

    def _log(self):
        return log.bind(attempt_id=self.id, board_id=self.board_id, owner=self.owner, kind=self.kind)

    def advance(self, to: AttemptState, **info: Any) -> None:
        if to not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {to.value}")
        self.state = to
        self.history.append(to)
        self._log().info("submission_state", state=to.value, **info)

    def reject(self, kind: FailureKind, reason: str, **details: Any) -> SubmissionFailure:
        if self.state in _TERMINAL:
            raise InvalidTransition(f"{self.state.value} -> {AttemptState.REJECTED.value}")
        self.failure = SubmissionFailure(kind=kind, reason=reason, details=details)
        self.state = AttemptState.REJECTED
        self.history.append(AttemptState.REJECTED)
        logger = self._log()
        if kind is FailureKind.INVARIANT_VIOLATION:
            logger.error("submission_rejected", failure=kind.value, reason=reason, **details)
        else:
            logger.info("submission_rejected", failure=kind.value, reason=reason)
        return self.failure


@dataclass
class SubmissionOutcome:
    accepted: bool
    state: AttemptState
    submission: Submission | None = None
    failure: SubmissionFailure | None = None
    validation: ContestValidation | None = None
    scoring: ImageScoringResult | None = None

    @classmethod
    def rejected(cls, attempt: SubmissionAttempt, submission: Submission | None = None, **extra: Any) -> "SubmissionOutcome":
        return cls(accepted=False, state=attempt.state, failure=attempt.failure, submission=submission, **extra)


def _utcnow() -> datetime:
    return datetime.now(dt_tz.utc)


class SubmissionOrchestrator:
    """
    Accept/reject decision for a single submission attempt.

    Checks run in a fixed order so the reported reason is always the first
    one that applies: access, lifecycle, quota, frequency, cooldown, image
    validation, judge. Quota and frequency are read again right before the
    record is written; two simultaneous attempts can still both pass, the
    storage layer offers no check-and-insert.
    """

    def __init__(
        self,
        store: SubmissionStore,
        judge: Judge,
        throttle: SubmitThrottle,
        object_storage: ObjectStorage | None = None,
        tz_name: str = "UTC",
        recent_window_minutes: int = DEFAULT_RECENT_WINDOW_MINUTES,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.judge = judge
        self.throttle = throttle
        self.object_storage = object_storage
        self.tz_name = tz_name
        self.recent_window_minutes = recent_window_minutes
        self.clock = clock

    def now(self) -> datetime:
        return as_utc(self.clock())

    # --- gates ---
    async def _load_board(self, attempt: SubmissionAttempt, board_id) -> Board | None:
        board = await self.store.get_board(board_id)
        if board is None:
            attempt.reject(FailureKind.INVARIANT_VIOLATION, "Board not found", board_id=str(board_id))
        return board

    def _check_access_and_lifecycle(self, attempt: SubmissionAttempt, board: Board) -> bool:
        if not can_access_board(board, attempt.owner):
            attempt.reject(FailureKind.POLICY_DENIED, "You do not have access to this board", policy="access")
            return False
        attempt.advance(AttemptState.ACCESS_CHECKED)

        state = board_state(board, self.now())
        if state is BoardState.INACTIVE:
            attempt.reject(FailureKind.POLICY_DENIED, "This board is not active", policy="inactive")
            return False
        if state is BoardState.EXPIRED:
            attempt.reject(FailureKind.POLICY_DENIED, "This board has expired", policy="expired")
            return False
        attempt.advance(AttemptState.LIFECYCLE_CHECKED)
        return True

    async def _limits_ok(self, attempt: SubmissionAttempt, board: Board, advance: bool) -> bool:
        quota = await check_quota(self.store, board.id, attempt.owner, board=board)
        if not quota.can_submit:
            attempt.reject(
                FailureKind.QUOTA_EXCEEDED,
                f"You have reached the maximum number of submissions ({quota.max_allowed}) for this board",
                current_count=quota.current_count,
                max_allowed=quota.max_allowed,
            )
            return False
        if advance:
            attempt.advance(AttemptState.QUOTA_CHECKED, current_count=quota.current_count, max_allowed=quota.max_allowed)

        freq = await check_frequency(self.store, board, attempt.owner, self.now(), self.tz_name)
        if not freq.allowed:
            period = FREQUENCY_LABELS.get(freq.frequency, "this period")
            attempt.reject(
                FailureKind.FREQUENCY_EXCEEDED,
                f"You have reached the maximum submissions for {period}",
                current_count=freq.window_count,
                max_allowed=freq.max_allowed,
                frequency=freq.frequency,
                window_start=freq.window_start.isoformat() if freq.window_start else None,
            )
            return False
        if advance:
            attempt.advance(AttemptState.FREQUENCY_CHECKED, window_count=freq.window_count, frequency=freq.frequency)
        return True

    async def _cooldown_ok(self, attempt: SubmissionAttempt, board: Board) -> bool:
        decision = await self.throttle.attempt(board.id, attempt.owner, self.now())
        if not decision.allowed:
            attempt.reject(
                FailureKind.THROTTLED,
                f"Please wait {decision.retry_after_seconds}s before submitting again",
                retry_after_seconds=decision.retry_after_seconds,
            )
            return False
        return True

    async def _gate(self, attempt: SubmissionAttempt, board_id) -> Board | None:
        board = await self._load_board(attempt, board_id)
        if board is None:
            return None
        if not self._check_access_and_lifecycle(attempt, board):
            return None
        if not await self._limits_ok(attempt, board, advance=True):
            return None
        if not await self._cooldown_ok(attempt, board):
            return None
        return board

    # --- scoring ---
    def _result_fields(self, board: Board, result: ImageScoringResult) -> dict[str, Any]:
        analysis = JudgeAnalysis.model_validate(result.analysis or {})
        overall = result.score.overall
        return {
            "rating": rescale(overall, board.max_score or 100),
            "summary": analysis.summary or f"Overall {overall}/100 ({score_description(overall)})",
            "reasoning": analysis.reasoning or format_scores(result.score),
            "risks": list(analysis.risks),
            "recommendations": list(analysis.recommendations),
            "scores": result.score.model_dump(),
            "judge_response": {
                "raw": result.raw_response,
                "analysis": result.analysis,
                "processing_time_ms": result.processing_time_ms,
            },
        }

    async def _judge(self, board: Board, owner: str, artifact: dict, submission_id: str | None) -> ImageScoringResult:
        return await score_submission(
            self.judge,
            contest_type=board.contest_type,
            theme=board.contest_prompt,
            artifact=artifact,
            contest_id=str(board.id),
            user_id=owner,
            submission_id=submission_id,
            judging_criteria=[c for c in (board.judging_criteria or []) if c],
            max_score=board.max_score or 100,
        )

    async def _score_and_attach(self, attempt: SubmissionAttempt, board: Board, sub: Submission) -> SubmissionOutcome:
        """Score an already persisted, unprocessed record and update it in place."""
        artifact = await self._artifact_for(sub)
        result = await self._judge(board, attempt.owner, artifact, str(sub.id))
        if not result.success:
            attempt.reject(
                FailureKind.JUDGE_FAILURE,
                "The judge could not score this submission, please try again",
                error=result.error,
                submission_id=str(sub.id),
                retryable=True,
            )
            return SubmissionOutcome.rejected(attempt, submission=sub, scoring=result)
        attempt.advance(AttemptState.SCORED, overall=result.score.overall)
        sub = await self.store.update_submission(sub.id, is_processed=True, **self._result_fields(board, result))
        attempt.advance(AttemptState.PERSISTED, submission_id=str(sub.id))
        return SubmissionOutcome(accepted=True, state=attempt.state, submission=sub, scoring=result)

    async def _artifact_for(self, sub: Submission) -> dict[str, Any]:
        if sub.kind == "text":
            return {"kind": "text", "text": sub.prompt or "", "context": sub.context}
        url = sub.image_url
        if self.object_storage is not None and sub.image_key:
            url = await asyncio.to_thread(self.object_storage.presign_get, sub.image_key)
        meta = sub.image_metadata or {}
        return {
            "kind": "image",
            "url": url,
            "key": sub.image_key,
            "mime_type": sub.image_type,
            "description": meta.get("description"),
        }

    # --- entry points ---
    async def submit_text(self, board_id, owner: str, prompt: str, context: str | None = None) -> SubmissionOutcome:
        attempt = SubmissionAttempt(board_id=str(board_id), owner=owner, kind="text")
        board = await self._gate(attempt, board_id)
        if board is None:
            return SubmissionOutcome.rejected(attempt)

        artifact = {"kind": "text", "text": prompt, "context": context}
        result = await self._judge(board, owner, artifact, None)
        if not result.success:
            attempt.reject(FailureKind.JUDGE_FAILURE, "The judge could not score this submission, please try again",
                           error=result.error, retryable=True)
            return SubmissionOutcome.rejected(attempt, scoring=result)
        attempt.advance(AttemptState.SCORED, overall=result.score.overall)

        # The judge call may have taken seconds; read the counts again
        if not await self._limits_ok(attempt, board, advance=False):
            return SubmissionOutcome.rejected(attempt, scoring=result)
        sub = Submission(
            board_id=board.id,
            owner_email=owner,
            kind="text",
            submission_date=self.now(),
            prompt=prompt,
            context=context,
            image_metadata={},
            is_deleted=False,
            is_processed=True,
            **self._result_fields(board, result),
        )
        sub = await self.store.create_submission(sub)
        attempt.advance(AttemptState.PERSISTED, submission_id=str(sub.id))
        return SubmissionOutcome(accepted=True, state=attempt.state, submission=sub, scoring=result)

    async def submit_image(self, board_id, owner: str, upload: ImageUpload) -> SubmissionOutcome:
        attempt = SubmissionAttempt(board_id=str(board_id), owner=owner, kind="image")
        board = await self._gate(attempt, board_id)
        if board is None:
            return SubmissionOutcome.rejected(attempt)

        if not board.allow_image_submissions:
            attempt.reject(FailureKind.VALIDATION_FAILED, "Image validation failed",
                           reasons=["This board does not accept image submissions"])
            return SubmissionOutcome.rejected(attempt)

        try:
            inspected = inspect_image(upload.data)
        except ValueError as e:
            attempt.reject(FailureKind.VALIDATION_FAILED, "Image validation failed", reasons=[str(e)])
            return SubmissionOutcome.rejected(attempt)
        if upload.declared_type and upload.declared_type != inspected.mime:
            log.info("declared_type_mismatch", declared=upload.declared_type, detected=inspected.mime)

        last_modified = upload.last_modified or inspected.exif.get("taken_at")
        if last_modified is None:
            attempt.reject(FailureKind.VALIDATION_FAILED, "Image validation failed",
                           reasons=["Capture time is unknown: send last_modified with the upload"])
            return SubmissionOutcome.rejected(attempt)

        reasons: list[str] = []
        size = len(upload.data)
        if board.max_image_size and size > board.max_image_size:
            reasons.append(f"File size ({size} bytes) exceeds the maximum allowed size ({board.max_image_size} bytes)")
        allowed_types = [t for t in (board.allowed_image_types or []) if t]
        if allowed_types and inspected.mime not in allowed_types:
            reasons.append(f"File type ({inspected.mime}) is not allowed. Allowed types: {', '.join(allowed_types)}")

        meta = build_metadata(
            file_name=upload.file_name,
            file_size=size,
            file_type=inspected.mime,
            last_modified=last_modified,
            now=self.now(),
            width=inspected.width,
            height=inspected.height,
            exif=inspected.exif,
            recent_window_minutes=self.recent_window_minutes,
        )
        validation = validate_for_contest(meta, self.recent_window_minutes)
        reasons.extend(validation.reasons)
        if reasons:
            attempt.reject(FailureKind.VALIDATION_FAILED, "Image validation failed", reasons=reasons,
                           validation_score=validation.validation_score, points=validation.points)
            return SubmissionOutcome.rejected(attempt, validation=validation)
        attempt.advance(AttemptState.IMAGE_VALIDATED, validation_score=validation.validation_score)

        if self.object_storage is None:
            attempt.reject(FailureKind.INVARIANT_VIOLATION, "Image storage is not configured")
            return SubmissionOutcome.rejected(attempt, validation=validation)

        # Last read of the counts before the record is created
        if not await self._limits_ok(attempt, board, advance=False):
            return SubmissionOutcome.rejected(attempt, validation=validation)

        key = f"contest-submissions/{board.id}/{uuid.uuid4().hex}.{ext_for_mime(inspected.mime)}"
        await asyncio.to_thread(self.object_storage.put_bytes, key, upload.data, inspected.mime)
        metadata = meta.model_dump(mode="json")
        metadata["description"] = describe_metadata(meta)
        sub = await self.store.create_submission(Submission(
            board_id=board.id,
            owner_email=owner,
            kind="image",
            submission_date=self.now(),
            image_key=key,
            image_size=size,
            image_type=inspected.mime,
            image_metadata=metadata,
            risks=[],
            recommendations=[],
            is_deleted=False,
            is_processed=False,
        ))
        outcome = await self._score_and_attach(attempt, board, sub)
        outcome.validation = validation
        return outcome

    async def retry_scoring(self, submission_id, owner: str) -> SubmissionOutcome:
        """
        Score an unprocessed record left behind by a judge failure or an
        abandoned attempt. Updates that record; never creates a new one.
        """
        sub = await self.store.get_submission(submission_id)
        attempt = SubmissionAttempt(
            board_id=str(sub.board_id) if sub else "", owner=owner, kind=sub.kind if sub else "unknown",
        )
        if sub is None or sub.is_deleted:
            attempt.reject(FailureKind.INVARIANT_VIOLATION, "Submission not found", submission_id=str(submission_id))
            return SubmissionOutcome.rejected(attempt)
        if sub.owner_email != owner:
            attempt.reject(FailureKind.POLICY_DENIED, "Only the owner can rescore a submission", policy="owner")
            return SubmissionOutcome.rejected(attempt)
        if sub.is_processed:
            log.info("rescore_skipped", submission_id=str(sub.id), reason="already_processed")
            return SubmissionOutcome(accepted=True, state=AttemptState.PERSISTED, submission=sub)

        board = await self._load_board(attempt, sub.board_id)
        if board is None:
            return SubmissionOutcome.rejected(attempt, submission=sub)
        if not self._check_access_and_lifecycle(attempt, board):
            return SubmissionOutcome.rejected(attempt, submission=sub)
        # The record already counts toward quota and frequency
        attempt.advance(AttemptState.QUOTA_CHECKED, existing_record=True)
        attempt.advance(AttemptState.FREQUENCY_CHECKED, existing_record=True)
        if not await self._cooldown_ok(attempt, board):
            return SubmissionOutcome.rejected(attempt, submission=sub)
        if sub.kind == "image":
            attempt.advance(AttemptState.IMAGE_VALIDATED, existing_record=True)
        return await self._score_and_attach(attempt, board, sub)
