from __future__ import annotations
import json
import math
import re
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone as dt_tz
from typing import Any, Callable
import structlog
from pydantic import ValidationError
from picfight.schemas.scoring import JudgeAnalysis, ScoringCriteria, ImageScoringResult
from picfight.services.judge_client import Judge, JudgeError, JudgeRequest

log = structlog.get_logger()

CONTEST_TYPES = ("photography", "art", "design", "document", "general")
CRITERIA = ("creativity", "technical", "composition", "relevance", "originality")
CREATIVE_VOCABULARY = ("creative", "unique", "original", "artistic", "innovative")
POLISH_VOCABULARY = ("professional", "polished")

# Words in a theme that never name the subject
_THEME_STOPWORDS = {
    "the", "and", "for", "with", "your", "our", "best", "most", "show", "share",
    "photo", "photos", "image", "images", "picture", "pictures", "contest",
    "entry", "submit", "submission", "this", "that", "from", "into", "about",
}


@dataclass(frozen=True)
class ContestPrompt:
    analysis_type: str
    expected_fields: list[str]
    questions: list[str]
    document_type: str | None = None
    criteria: tuple[str, ...] = CRITERIA


CONTEST_PROMPTS: dict[str, ContestPrompt] = {
    "photography": ContestPrompt(
        analysis_type="general",
        expected_fields=[
            "composition_quality", "lighting_quality", "focus_sharpness",
            "color_balance", "subject_interest", "technical_excellence",
        ],
        questions=[
            "Rate the composition quality from 1-10",
            "How well is the image lit? Rate 1-10",
            "Is the image in focus and sharp? Rate 1-10",
            "How balanced are the colors? Rate 1-10",
            "How interesting is the subject matter for this contest? Rate 1-10",
            "Rate the overall technical quality 1-10",
        ],
    ),
    "art": ContestPrompt(
        analysis_type="art",
        expected_fields=[
            "artistic_style", "color_harmony", "composition_balance",
            "emotional_impact", "technical_skill", "originality",
        ],
        questions=[
            "What artistic style is this? Rate the style execution 1-10",
            "How harmonious are the colors? Rate 1-10",
            "How well balanced is the composition? Rate 1-10",
            "What emotional impact does this have in the contest? Rate 1-10",
            "Rate the technical skill shown 1-10",
            "How original is this artwork? Rate 1-10",
        ],
    ),
    "design": ContestPrompt(
        analysis_type="product",
        expected_fields=[
            "design_quality", "visual_hierarchy", "color_scheme",
            "typography", "brand_consistency", "user_appeal",
        ],
        questions=[
            "Rate the overall design quality 1-10",
            "How effective is the visual hierarchy? Rate 1-10",
            "How well chosen is the color scheme? Rate 1-10",
            "Rate the typography choices 1-10",
            "How consistent is this with the contest brief and good design principles? Rate 1-10",
            "How appealing would this be to users? Rate 1-10",
        ],
    ),
    "document": ContestPrompt(
        analysis_type="document",
        document_type="submission",
        expected_fields=["clarity", "completeness", "formatting", "readability", "professionalism", "accuracy"],
        questions=[
            "How clear is this document? Rate 1-10",
            "How complete is the information for the contest? Rate 1-10",
            "Rate the formatting quality 1-10",
            "How readable is this document? Rate 1-10",
            "How professional does this look? Rate 1-10",
            "Rate the apparent accuracy 1-10",
        ],
    ),
    "general": ContestPrompt(
        analysis_type="general",
        expected_fields=[
            "visual_appeal", "content_quality", "technical_quality",
            "creativity", "relevance", "overall_impact",
        ],
        questions=[
            "How visually appealing is this submission? Rate 1-10",
            "Rate the content quality 1-10",
            "How good is the technical quality? Rate 1-10",
            "How creative is this submission? Rate 1-10",
            "How relevant is this to the contest theme? Rate 1-10",
            "Rate the overall impact 1-10",
        ],
    ),
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def prompt_for(contest_type: str | None, theme: str | None) -> tuple[str, ContestPrompt]:
    """
    Template for the contest type (unknown types fall back to general) with
    the first "contest" in each question replaced by the theme.
    """
    ctype = contest_type if contest_type in CONTEST_PROMPTS else "general"
    base = CONTEST_PROMPTS[ctype]
    theme = (theme or "").strip() or f"{ctype} contest"
    questions = [q.replace("contest", theme, 1) for q in base.questions]
    return ctype, replace(base, questions=questions)


def subject_keywords(theme: str | None) -> list[str]:
    words = re.findall(r"[a-z]+", (theme or "").lower())
    seen: list[str] = []
    for w in words:
        if len(w) >= 3 and w not in _THEME_STOPWORDS and w not in seen:
            seen.append(w)
    return seen


def _mentions(keyword: str, text: str) -> bool:
    if keyword in text:
        return True
    # plural themes ("sunsets") vs singular labels ("sunset")
    return len(keyword) > 3 and keyword.endswith("s") and keyword[:-1] in text


def parse_judge_response(raw: Any) -> JudgeAnalysis:
    """
    Turn whatever the judge returned into the optional-field model.
    Raises JudgeError when there is no data or no JSON object in it.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise JudgeError("Judge returned no data")
    data = raw
    if isinstance(raw, str):
        text = raw.strip()
        text = re.sub(r"^```(?:json)?\s*|\s*```$", "", text)
        try:
            data = json.loads(text)
        except ValueError:
            start, end = text.find("{"), text.rfind("}")
            if start == -1 or end <= start:
                raise JudgeError("Judge response could not be parsed")
            try:
                data = json.loads(text[start:end + 1])
            except ValueError as e:
                raise JudgeError("Judge response could not be parsed") from e
    if not isinstance(data, dict):
        raise JudgeError("Judge response is not a JSON object")
    for wrapper in ("data", "analysis"):
        inner = data.get(wrapper)
        if isinstance(inner, dict) and len(data) == 1:
            data = inner
    try:
        return JudgeAnalysis.model_validate(data)
    except ValidationError as e:
        raise JudgeError(f"Judge response has an unexpected shape: {e.error_count()} error(s)") from e


def extract_scores(analysis: JudgeAnalysis, theme: str | None = None) -> ScoringCriteria:
    """
    Best-effort sub-scores from the fields the judge happened to return.
    Each sub-score is clamped after every adjustment; overall is always
    recomputed from the five clamped values.
    """
    s = {name: 50 for name in CRITERIA}

    objects = analysis.objects or []
    if objects:
        confidences = []
        for obj in objects:
            c = obj.confidence or 0.0
            confidences.append(c / 100.0 if c > 1 else c)
        s["technical"] = clamp(sum(confidences) / len(confidences) * 100)

    quality = analysis.technical.quality if analysis.technical else None
    if quality == "high":
        s["technical"] = clamp(max(s["technical"], 80))
    elif quality == "medium":
        s["technical"] = clamp(max(s["technical"], 60))
    elif quality == "low":
        s["technical"] = clamp(min(s["technical"], 40))

    if analysis.composition is not None:
        comp = 50
        if analysis.composition.rule_of_thirds:
            comp += 20
        if analysis.composition.symmetry:
            comp += 15
        if analysis.composition.leading_lines:
            comp += 15
        s["composition"] = clamp(comp)

    mood = (analysis.scene.mood or "").lower() if analysis.scene else ""
    if any(word in mood for word in POLISH_VOCABULARY):
        s["technical"] = clamp(max(s["technical"], 70))

    tags = [t.lower() for t in (analysis.tags or [])]
    hits = sum(1 for t in tags if any(word in t for word in CREATIVE_VOCABULARY))
    hits += sum(1 for word in CREATIVE_VOCABULARY if word in mood)
    if hits:
        s["creativity"] = clamp(min(100, 50 + hits * 10))
        s["originality"] = clamp(min(100, 50 + hits * 8))
    if "creative" in mood or "unique" in mood:
        s["creativity"] = clamp(max(s["creativity"], 70))

    keywords = subject_keywords(theme)
    labels = [o.label.lower() for o in objects if o.label]
    if keywords and (labels or tags):
        evidence = labels + tags
        if any(_mentions(k, text) for k in keywords for text in evidence):
            s["relevance"] = clamp(max(s["relevance"], 80))
        elif labels:
            s["relevance"] = clamp(20)

    overall = round_half_up(sum(s[name] for name in CRITERIA) / len(CRITERIA))
    return ScoringCriteria(**s, overall=max(0, min(100, overall)))


def rescale(overall: int, max_score: int) -> int:
    """0-100 overall onto the board's scale."""
    return round_half_up(overall * max_score / 100)


def score_description(score: int) -> str:
    if score >= 90:
        return "Excellent"
    if score >= 80:
        return "Very Good"
    if score >= 70:
        return "Good"
    if score >= 60:
        return "Fair"
    if score >= 50:
        return "Average"
    if score >= 40:
        return "Below Average"
    if score >= 30:
        return "Poor"
    return "Very Poor"


def format_scores(criteria: ScoringCriteria) -> str:
    return "\n".join(
        f"{name.capitalize()}: {value}/100 ({score_description(value)})"
        for name, value in criteria.model_dump().items()
    )


async def score_submission(
    judge: Judge,
    *,
    contest_type: str | None,
    theme: str | None,
    artifact: dict[str, Any],
    contest_id: str,
    user_id: str,
    submission_id: str | None = None,
    judging_criteria: list[str] | None = None,
    max_score: int = 100,
    clock: Callable[[], float] = time.monotonic,
) -> ImageScoringResult:
    """
    Judge one artifact and normalize the answer. Never raises for judge
    problems and never fabricates scores: failures come back with success=False.
    """
    started = clock()
    ctype, prompt = prompt_for(contest_type, theme)
    effective_theme = (theme or "").strip() or f"{ctype} contest"
    request = JudgeRequest(
        mode=prompt.analysis_type,
        expected_fields=list(prompt.expected_fields),
        questions=list(prompt.questions),
        artifact=artifact,
        contest_type=ctype,
        theme=effective_theme,
        judging_criteria=list(judging_criteria or []),
        max_score=max_score,
        document_type=prompt.document_type,
    )

    def _failure(message: str) -> ImageScoringResult:
        log.warning("judge_failed", contest_id=contest_id, submission_id=submission_id, error=message)
        return ImageScoringResult(
            success=False,
            error=message,
            processing_time_ms=int((clock() - started) * 1000),
            contest_id=contest_id,
            submission_id=submission_id,
            user_id=user_id,
            timestamp=datetime.now(dt_tz.utc),
        )

    try:
        reply = await judge.judge(request)
        analysis = parse_judge_response(reply.raw_response if reply is not None else None)
        score = extract_scores(analysis, theme)
    except JudgeError as e:
        return _failure(str(e))
    except Exception as e:
        # judge adapters are third-party code; any crash is a judge failure
        return _failure(str(e) or e.__class__.__name__)

    elapsed_ms = int((clock() - started) * 1000)
    log.info("judge_scored", contest_id=contest_id, submission_id=submission_id,
             overall=score.overall, processing_time_ms=elapsed_ms)
    return ImageScoringResult(
        success=True,
        score=score,
        analysis=analysis.model_dump(mode="json"),
        raw_response=reply.raw_response,
        processing_time_ms=elapsed_ms,
        contest_id=contest_id,
        submission_id=submission_id,
        user_id=user_id,
        timestamp=datetime.now(dt_tz.utc),
    )
