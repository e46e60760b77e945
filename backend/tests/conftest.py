from __future__ import annotations
import io
import os
import random

# Settings are read at import time; configure before anything from picfight loads
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ADMIN_EMAILS"] = "admin@picfight.test"
os.environ["SUBMIT_COOLDOWN_SECONDS"] = "0"
os.environ["REDIS_URL"] = ""
os.environ["BOARD_TIMEZONE"] = "UTC"

from datetime import datetime, timezone
import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from picfight.db import Base, get_session
from picfight.main import app
from picfight.auth_deps import get_judge, get_storage, get_throttle
from picfight.models.board import Board
from picfight.models.submission import Submission
from picfight.security import make_access_token
from picfight.services.judge_client import JudgeReply
from picfight.services.orchestrator import SubmissionOrchestrator
from picfight.services.store import SubmissionStore
from picfight.services.throttle import SubmitThrottle

ADMIN = "admin@picfight.test"

JUDGE_RESPONSE = {
    "objects": [{"label": "sunset", "confidence": 0.9}, {"label": "beach", "confidence": 0.8}],
    "technical": {"quality": "high"},
    "composition": {"ruleOfThirds": True, "symmetry": False, "leadingLines": True},
    "scene": {"mood": "calm and artistic", "setting": "outdoor"},
    "tags": ["sunset", "creative"],
    "summary": "A warm sunset over the beach.",
    "reasoning": "Strong diagonal lines lead to the horizon.",
    "risks": [],
    "recommendations": ["Straighten the horizon"],
}
# Scores the response above produces for a theme mentioning sunsets
JUDGE_OVERALL = 77


class FakeJudge:
    def __init__(self, raw=None, error: Exception | None = None):
        self.raw = JUDGE_RESPONSE if raw is None else raw
        self.error = error
        self.requests = []

    async def judge(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return JudgeReply(raw_response=self.raw)


class FakeObjectStorage:
    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = (data, content_type)

    def get_bytes(self, key: str) -> tuple[bytes, str]:
        if key not in self.objects:
            raise FileNotFoundError(f"Object not found: {key}")
        return self.objects[key]

    def presign_get(self, key: str) -> str:
        return f"https://storage.test/{key}"


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def auth(email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_access_token(email)}"}


def camera_jpeg(width: int = 1080, height: int = 1920, seed: int = 7) -> bytes:
    """Noise JPEG at a phone resolution; large enough to pass the size checks."""
    rnd = random.Random(seed)
    img = Image.frombytes("RGB", (width, height), rnd.randbytes(width * height * 3))
    buf = io.BytesIO()
    img.save(buf, "JPEG", quality=75)
    return buf.getvalue()


def small_jpeg(width: int = 800, height: int = 600) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 120, 40)).save(buf, "JPEG")
    return buf.getvalue()


async def make_board(store: SubmissionStore, **overrides) -> Board:
    fields = dict(
        name="Sunset Showdown",
        description="Best sunset photos of the week",
        created_by=ADMIN,
        is_public=True,
        allowed_emails=[],
        is_active=True,
        expires_at=None,
        is_deleted=False,
        max_submissions_per_user=2,
        submission_frequency="unlimited",
        contest_type="photography",
        contest_prompt="Best sunset photos",
        judging_criteria=["creativity", "composition"],
        max_score=100,
        allow_image_submissions=True,
        max_image_size=20 * 1024 * 1024,
        allowed_image_types=["image/jpeg", "image/png"],
    )
    fields.update(overrides)
    return await store.create_board(Board(**fields))


async def add_submission(store: SubmissionStore, board: Board, owner: str, when: datetime, **overrides) -> Submission:
    fields = dict(
        board_id=board.id,
        owner_email=owner,
        kind="text",
        submission_date=when,
        prompt="an entry",
        image_metadata={},
        risks=[],
        recommendations=[],
        is_deleted=False,
        is_processed=True,
    )
    fields.update(overrides)
    return await store.create_submission(Submission(**fields))


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session(engine):
    maker = async_sessionmaker(engine, expire_on_commit=False)
    async with maker() as s:
        yield s


@pytest.fixture
def store(session) -> SubmissionStore:
    return SubmissionStore(session)


@pytest.fixture
def judge() -> FakeJudge:
    return FakeJudge()


@pytest.fixture
def object_storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 6, 11, 12, 0, tzinfo=timezone.utc))  # a Wednesday


@pytest.fixture
def orchestrator(store, judge, object_storage, clock) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(store, judge, SubmitThrottle(0), object_storage=object_storage, clock=clock)


@pytest_asyncio.fixture
async def client(engine, judge, object_storage):
    maker = async_sessionmaker(engine, expire_on_commit=False)

    async def _session():
        async with maker() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_judge] = lambda: judge
    app.dependency_overrides[get_storage] = lambda: object_storage
    app.dependency_overrides[get_throttle] = lambda: SubmitThrottle(0)
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
