from __future__ import annotations
from datetime import timedelta
import pytest
from conftest import FakeJudge, JUDGE_OVERALL, JUDGE_RESPONSE, make_board, add_submission, camera_jpeg, small_jpeg
from picfight.services.judge_client import JudgeError
from picfight.services.orchestrator import (
    AttemptState, FailureKind, ImageUpload, InvalidTransition, SubmissionAttempt, SubmissionOrchestrator,
)
from picfight.services.quota import check_quota
from picfight.services.throttle import SubmitThrottle

OWNER = "player@ex.com"


def _photo(clock, **kw) -> ImageUpload:
    fields = dict(file_name="IMG_2041.jpg", data=camera_jpeg(), last_modified=clock.now - timedelta(minutes=5))
    fields.update(kw)
    return ImageUpload(**fields)


@pytest.mark.asyncio
async def test_text_submission_is_scored_and_persisted(store, orchestrator, judge):
    board = await make_board(store, max_score=10)
    outcome = await orchestrator.submit_text(board.id, OWNER, "A sunset over the harbour", "shot at dusk")
    assert outcome.accepted and outcome.state is AttemptState.PERSISTED
    sub = outcome.submission
    assert sub.kind == "text" and sub.is_processed and not sub.is_deleted
    assert sub.rating == 8  # 77/100 on a 10 point board
    assert sub.scores["overall"] == JUDGE_OVERALL
    assert sub.summary == JUDGE_RESPONSE["summary"]
    assert sub.recommendations == JUDGE_RESPONSE["recommendations"]
    assert judge.requests[0].artifact == {"kind": "text", "text": "A sunset over the harbour", "context": "shot at dusk"}


@pytest.mark.asyncio
async def test_access_denial_is_reported_before_quota(store, orchestrator, clock, judge):
    """A user who is both locked out and over quota hears about access"""
    board = await make_board(store, is_public=False, allowed_emails=[], max_submissions_per_user=1)
    await add_submission(store, board, OWNER, clock.now - timedelta(days=1))
    outcome = await orchestrator.submit_text(board.id, OWNER, "entry")
    assert outcome.failure.kind is FailureKind.POLICY_DENIED
    assert outcome.failure.details["policy"] == "access"
    assert judge.requests == []


@pytest.mark.asyncio
async def test_lifecycle_is_checked_before_quota(store, orchestrator, clock):
    expired = await make_board(store, expires_at=clock.now, max_submissions_per_user=1)
    await add_submission(store, expired, OWNER, clock.now - timedelta(days=1))
    inactive = await make_board(store, is_active=False)

    outcome = await orchestrator.submit_text(expired.id, OWNER, "entry")
    assert outcome.failure.kind is FailureKind.POLICY_DENIED
    assert outcome.failure.details["policy"] == "expired"

    outcome = await orchestrator.submit_text(inactive.id, OWNER, "entry")
    assert outcome.failure.details["policy"] == "inactive"


@pytest.mark.asyncio
async def test_missing_board_is_an_invariant_violation(orchestrator):
    outcome = await orchestrator.submit_text("0b7e7a1e-1111-4000-8000-000000000000", OWNER, "entry")
    assert outcome.failure.kind is FailureKind.INVARIANT_VIOLATION
    outcome = await orchestrator.submit_text("not-a-uuid", OWNER, "entry")
    assert outcome.failure.kind is FailureKind.INVARIANT_VIOLATION


@pytest.mark.asyncio
async def test_quota_is_reported_before_cooldown(store, judge, object_storage, clock):
    orch = SubmissionOrchestrator(store, judge, SubmitThrottle(10), object_storage=object_storage, clock=clock)
    board = await make_board(store, max_submissions_per_user=1)
    assert (await orch.submit_text(board.id, OWNER, "first")).accepted
    outcome = await orch.submit_text(board.id, OWNER, "second")
    assert outcome.failure.kind is FailureKind.QUOTA_EXCEEDED
    assert outcome.failure.details == {"current_count": 1, "max_allowed": 1}


@pytest.mark.asyncio
async def test_cooldown_throttles_rapid_attempts(store, judge, object_storage, clock):
    orch = SubmissionOrchestrator(store, judge, SubmitThrottle(10), object_storage=object_storage, clock=clock)
    board = await make_board(store, max_submissions_per_user=5)
    assert (await orch.submit_text(board.id, OWNER, "first")).accepted
    clock.now = clock.now + timedelta(seconds=4)
    outcome = await orch.submit_text(board.id, OWNER, "second")
    assert outcome.failure.kind is FailureKind.THROTTLED
    assert outcome.failure.details["retry_after_seconds"] == 6
    clock.now = clock.now + timedelta(seconds=6)
    assert (await orch.submit_text(board.id, OWNER, "third")).accepted


@pytest.mark.asyncio
async def test_text_judge_failure_persists_nothing(store, orchestrator, judge):
    judge.error = JudgeError("Judge returned HTTP 500")
    board = await make_board(store)
    outcome = await orchestrator.submit_text(board.id, OWNER, "entry")
    assert outcome.failure.kind is FailureKind.JUDGE_FAILURE
    assert outcome.failure.details["error"] == "Judge returned HTTP 500"
    assert outcome.submission is None
    assert (await check_quota(store, board.id, OWNER)).current_count == 0


@pytest.mark.asyncio
async def test_non_finite_judge_confidence_is_scored_not_raised(store, orchestrator, judge):
    judge.raw = '{"objects": [{"label": "sunset", "confidence": NaN}], "tags": ["sunset"]}'
    board = await make_board(store)
    outcome = await orchestrator.submit_text(board.id, OWNER, "entry")
    assert outcome.accepted and outcome.state is AttemptState.PERSISTED
    assert outcome.submission.scores["technical"] == 0
    assert 0 <= outcome.submission.rating <= 100


@pytest.mark.asyncio
async def test_quota_is_read_again_before_the_write(store, clock, object_storage):
    """Another entry landing while the judge is busy uses up the last slot"""
    board = await make_board(store, max_submissions_per_user=1)

    class SlowJudge(FakeJudge):
        async def judge(self, request):
            await add_submission(store, board, OWNER, clock.now)
            return await super().judge(request)

    orch = SubmissionOrchestrator(store, SlowJudge(), SubmitThrottle(0), object_storage=object_storage, clock=clock)
    outcome = await orch.submit_text(board.id, OWNER, "entry")
    assert outcome.failure.kind is FailureKind.QUOTA_EXCEEDED
    assert outcome.state is AttemptState.REJECTED and outcome.scoring.success
    assert (await check_quota(store, board.id, OWNER)).current_count == 1


@pytest.mark.asyncio
async def test_image_submission_uploads_scores_and_marks_processed(store, orchestrator, judge, object_storage, clock):
    board = await make_board(store)
    outcome = await orchestrator.submit_image(board.id, OWNER, _photo(clock))
    assert outcome.accepted, outcome.failure
    sub = outcome.submission
    assert sub.kind == "image" and sub.is_processed
    assert sub.image_type == "image/jpeg"
    assert sub.image_key in object_storage.objects
    assert sub.image_key.startswith(f"contest-submissions/{board.id}/")
    assert sub.image_metadata["validation_score"] >= 90
    assert sub.rating == JUDGE_OVERALL
    artifact = judge.requests[0].artifact
    assert artifact["kind"] == "image" and artifact["url"].endswith(sub.image_key)
    assert outcome.validation.is_valid


@pytest.mark.asyncio
async def test_old_small_image_is_rejected_before_the_judge(store, orchestrator, judge, object_storage, clock):
    board = await make_board(store)
    upload = ImageUpload(file_name="download.jpg", data=small_jpeg(), last_modified=clock.now - timedelta(hours=3))
    outcome = await orchestrator.submit_image(board.id, OWNER, upload)
    assert outcome.failure.kind is FailureKind.VALIDATION_FAILED
    reasons = outcome.failure.details["reasons"]
    assert any("not recent" in r for r in reasons)
    assert any("Validation score too low" in r for r in reasons)
    assert judge.requests == [] and object_storage.objects == {}
    assert (await check_quota(store, board.id, OWNER)).current_count == 0


@pytest.mark.asyncio
async def test_board_image_policy(store, orchestrator, clock):
    text_only = await make_board(store, allow_image_submissions=False)
    outcome = await orchestrator.submit_image(text_only.id, OWNER, _photo(clock))
    assert outcome.failure.details["reasons"] == ["This board does not accept image submissions"]

    png_only = await make_board(store, allowed_image_types=["image/png"], max_image_size=1024)
    outcome = await orchestrator.submit_image(png_only.id, OWNER, _photo(clock))
    reasons = outcome.failure.details["reasons"]
    assert any("exceeds the maximum allowed size" in r for r in reasons)
    assert any("File type (image/jpeg) is not allowed" in r for r in reasons)


@pytest.mark.asyncio
async def test_undecodable_upload_is_a_validation_failure(store, orchestrator, clock):
    board = await make_board(store)
    outcome = await orchestrator.submit_image(board.id, OWNER, _photo(clock, data=b"definitely not an image"))
    assert outcome.failure.kind is FailureKind.VALIDATION_FAILED
    assert outcome.failure.details["reasons"] == ["Unsupported image type"]


@pytest.mark.asyncio
async def test_judge_failure_leaves_unscored_record_and_retry_updates_it(store, orchestrator, judge, clock):
    board = await make_board(store)
    judge.error = JudgeError("timeout")
    outcome = await orchestrator.submit_image(board.id, OWNER, _photo(clock))
    assert outcome.failure.kind is FailureKind.JUDGE_FAILURE
    pending = outcome.submission
    assert pending is not None and not pending.is_processed
    assert outcome.failure.details["submission_id"] == str(pending.id)

    # A stranger cannot rescore it
    denied = await orchestrator.retry_scoring(pending.id, "someone@ex.com")
    assert denied.failure.kind is FailureKind.POLICY_DENIED

    judge.error = None
    retried = await orchestrator.retry_scoring(pending.id, OWNER)
    assert retried.accepted
    assert retried.submission.id == pending.id and retried.submission.is_processed
    assert retried.submission.rating == JUDGE_OVERALL
    assert (await check_quota(store, board.id, OWNER)).current_count == 1

    calls = len(judge.requests)
    again = await orchestrator.retry_scoring(pending.id, OWNER)
    assert again.accepted and len(judge.requests) == calls


@pytest.mark.asyncio
async def test_retry_of_unknown_submission(orchestrator):
    outcome = await orchestrator.retry_scoring("0b7e7a1e-2222-4000-8000-000000000000", OWNER)
    assert outcome.failure.kind is FailureKind.INVARIANT_VIOLATION


def test_attempt_state_machine_rejects_illegal_moves():
    attempt = SubmissionAttempt(board_id="b1", owner=OWNER, kind="text")
    with pytest.raises(InvalidTransition):
        attempt.advance(AttemptState.QUOTA_CHECKED)
    for state in (AttemptState.ACCESS_CHECKED, AttemptState.LIFECYCLE_CHECKED, AttemptState.QUOTA_CHECKED,
                  AttemptState.FREQUENCY_CHECKED, AttemptState.SCORED, AttemptState.PERSISTED):
        attempt.advance(state)
    with pytest.raises(InvalidTransition):
        attempt.advance(AttemptState.PERSISTED)
    with pytest.raises(InvalidTransition):
        attempt.reject(FailureKind.JUDGE_FAILURE, "late failure")
    assert attempt.history[0] is AttemptState.RECEIVED and attempt.history[-1] is AttemptState.PERSISTED
