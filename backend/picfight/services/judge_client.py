from __future__ import annotations
from typing import Any, Protocol
import httpx
import structlog
from pydantic import BaseModel, Field
from picfight.config import settings

log = structlog.get_logger()


class JudgeError(Exception):
    """The judge could not be reached, failed, or answered with nothing usable."""


class JudgeRequest(BaseModel):
    mode: str
    expected_fields: list[str]
    questions: list[str]
    # {"kind": "image", "url": ..., "key": ...} or {"kind": "text", "text": ..., "context": ...}
    artifact: dict[str, Any]
    contest_type: str
    theme: str
    judging_criteria: list[str] = Field(default_factory=list)
    max_score: int = 100
    document_type: str | None = None


class JudgeReply(BaseModel):
    raw_response: Any = None


class Judge(Protocol):
    async def judge(self, request: JudgeRequest) -> JudgeReply: ...


class HttpJudge:
    """
    Posts the judging request as JSON to the configured endpoint.
    One call per submission, no retries; timeouts surface as JudgeError.
    """

    def __init__(self, url: str, api_key: str = "", timeout_seconds: float = 60.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.api_key = api_key
        self.timeout = httpx.Timeout(timeout_seconds)
        self.transport = transport

    async def judge(self, request: JudgeRequest) -> JudgeReply:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(self.url, json=request.model_dump(mode="json"), headers=headers)
        except httpx.HTTPError as e:
            log.warning("judge_unreachable", url=self.url, error=str(e))
            raise JudgeError(f"Judge request failed: {e}") from e

        if r.status_code >= 400:
            log.warning("judge_http_error", url=self.url, status=r.status_code)
            raise JudgeError(f"Judge returned HTTP {r.status_code}")

        content_type = r.headers.get("content-type", "")
        if "json" in content_type:
            try:
                body = r.json()
            except ValueError as e:
                raise JudgeError("Judge returned malformed JSON") from e
            if isinstance(body, dict) and "raw_response" in body:
                return JudgeReply(raw_response=body["raw_response"])
            return JudgeReply(raw_response=body)
        return JudgeReply(raw_response=r.text)


def build_judge() -> Judge:
    return HttpJudge(settings.judge_url, settings.judge_api_key, settings.judge_timeout_seconds)
