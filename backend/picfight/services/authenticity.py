from __future__ import annotations
import os
from datetime import datetime, timedelta
from picfight.schemas.scoring import ImageMetadata, ContestValidation
from picfight.services.time_windows import as_utc

KB = 1024
MB = 1024 * 1024

CAMERA_PREFIXES = ("img_", "photo_", "pic_", "camera_", "snap_")
APP_TOKENS = (
    "camera", "photos", "gallery", "snapchat", "instagram",
    "whatsapp", "telegram", "facebook", "twitter", "tiktok",
)
# Stored landscape; matched in either orientation
MOBILE_RESOLUTIONS = {(1920, 1080), (4032, 3024), (2340, 1080), (3200, 1440), (2400, 1080)}
DEVICE_HINTS = (
    ("iphone", "Apple", "iPhone"),
    ("pxl_", "Google", "Pixel"),
    ("pixel", "Google", "Pixel"),
    ("samsung", "Samsung", None),
    ("oneplus", "OnePlus", None),
    ("huawei", "Huawei", None),
    ("xiaomi", "Xiaomi", None),
    ("motorola", "Motorola", None),
    ("nokia", "Nokia", None),
)

# Clock skew tolerated for timestamps slightly ahead of the server
FUTURE_SKEW = timedelta(minutes=5)
DEFAULT_RECENT_WINDOW_MINUTES = 60

CONTEST_MIN_SCORE = 50
CONTEST_MIN_POINTS = 70
CONTEST_SIZE_RANGE = (100 * KB, 20 * MB)
CONTEST_DIMENSION_RANGE = (500, 6000)


def _age(last_modified: datetime, now: datetime) -> timedelta | None:
    """Capture age; None when the timestamp is implausibly in the future."""
    age = as_utc(now) - as_utc(last_modified)
    if age < -FUTURE_SKEW:
        return None
    return max(age, timedelta(0))


def recency_points(last_modified: datetime, now: datetime) -> int:
    age = _age(last_modified, now)
    if age is None:
        return 0
    if age <= timedelta(minutes=30):
        return 40
    if age <= timedelta(hours=1):
        return 30
    if age <= timedelta(hours=2):
        return 20
    if age <= timedelta(hours=6):
        return 10
    return 0


def size_points(file_size: int) -> int:
    if 500 * KB <= file_size <= 8 * MB:
        return 20
    if 100 * KB <= file_size <= 15 * MB:
        return 15
    return 5


def is_mobile_resolution(width: int | None, height: int | None) -> bool:
    if not width or not height:
        return False
    return (width, height) in MOBILE_RESOLUTIONS or (height, width) in MOBILE_RESOLUTIONS


def resolution_points(width: int | None, height: int | None) -> int:
    if is_mobile_resolution(width, height):
        return 25
    if width and height and width > 1000 and height > 1000:
        return 15
    return 5


def has_camera_filename(file_name: str) -> bool:
    base = os.path.basename(file_name or "").lower()
    return base.startswith(CAMERA_PREFIXES)


def app_token(file_name: str, software: str | None = None) -> str | None:
    """First known camera/social app named in the filename or EXIF software field."""
    haystack = f"{os.path.basename(file_name or '')} {software or ''}".lower()
    for token in APP_TOKENS:
        if token in haystack:
            return token
    return None


def is_recent(last_modified: datetime, now: datetime, window_minutes: int = DEFAULT_RECENT_WINDOW_MINUTES) -> bool:
    age = _age(last_modified, now)
    return age is not None and age <= timedelta(minutes=window_minutes)


def validation_score(file_name: str, file_size: int, last_modified: datetime,
                     width: int | None, height: int | None, now: datetime) -> int:
    score = (
        recency_points(last_modified, now)
        + size_points(file_size)
        + resolution_points(width, height)
    )
    if has_camera_filename(file_name):
        score += 15
    return max(0, min(100, score))


def camera_likelihood(file_name: str, file_size: int, width: int | None, height: int | None,
                      software: str | None = None) -> int:
    points = 0
    if has_camera_filename(file_name):
        points += 30
    if app_token(file_name, software):
        points += 25
    if 100 * KB <= file_size <= 10 * MB:
        points += 20
    if is_mobile_resolution(width, height):
        points += 25
    return points


def estimate_device(file_name: str, exif: dict | None = None) -> tuple[str | None, str | None]:
    exif = exif or {}
    make, model = exif.get("make"), exif.get("model")
    if make or model:
        return make, model
    base = os.path.basename(file_name or "").lower()
    for token, hint_make, hint_model in DEVICE_HINTS:
        if token in base:
            return hint_make, hint_model
    return None, None


def orientation(width: int | None, height: int | None) -> str:
    if not width or not height:
        return "unknown"
    if width == height:
        return "square"
    return "landscape" if width > height else "portrait"


def build_metadata(
    file_name: str,
    file_size: int,
    file_type: str,
    last_modified: datetime,
    now: datetime,
    width: int | None = None,
    height: int | None = None,
    exif: dict | None = None,
    recent_window_minutes: int = DEFAULT_RECENT_WINDOW_MINUTES,
) -> ImageMetadata:
    """Pure function of file metadata and `now`."""
    exif = exif or {}
    make, model = estimate_device(file_name, exif)
    software = exif.get("software") or app_token(file_name)
    return ImageMetadata(
        file_name=file_name,
        file_size=file_size,
        file_type=file_type,
        last_modified=as_utc(last_modified),
        device_make=make,
        device_model=model,
        software=software,
        width=width,
        height=height,
        orientation=orientation(width, height),
        is_recent=is_recent(last_modified, now, recent_window_minutes),
        is_from_camera=camera_likelihood(file_name, file_size, width, height, exif.get("software")) >= 50,
        validation_score=validation_score(file_name, file_size, last_modified, width, height, now),
    )


def validate_for_contest(meta: ImageMetadata, recent_window_minutes: int = DEFAULT_RECENT_WINDOW_MINUTES) -> ContestValidation:
    """
    Eligibility verdict. Every failing check adds a reason; all of them are
    returned so the user can fix several issues at once.
    """
    points = 0
    reasons: list[str] = []

    if meta.is_recent:
        points += 40
    else:
        reasons.append(f"Image is not recent (must be captured within {recent_window_minutes} minutes of upload)")

    if meta.is_from_camera:
        points += 30
    else:
        reasons.append("Image does not appear to be taken with a camera")

    if meta.validation_score >= CONTEST_MIN_SCORE:
        points += 30
    else:
        reasons.append(f"Validation score too low ({meta.validation_score}/100, minimum {CONTEST_MIN_SCORE})")

    lo, hi = CONTEST_SIZE_RANGE
    if lo <= meta.file_size <= hi:
        points += 10
    else:
        reasons.append(f"File size {round(meta.file_size / KB)}KB is outside the allowed range (100KB-20MB)")

    dmin, dmax = CONTEST_DIMENSION_RANGE
    if meta.width and meta.height and dmin <= meta.width <= dmax and dmin <= meta.height <= dmax:
        points += 10
    elif meta.width and meta.height:
        reasons.append(f"Image dimensions {meta.width}x{meta.height} are outside the allowed range ({dmin}-{dmax}px)")
    else:
        reasons.append("Image dimensions could not be determined")

    return ContestValidation(
        is_valid=not reasons and points >= CONTEST_MIN_POINTS,
        points=points,
        reasons=reasons,
        validation_score=meta.validation_score,
    )


def describe_metadata(meta: ImageMetadata) -> str:
    parts = [
        f"File: {meta.file_name}",
        f"Size: {round(meta.file_size / KB)}KB",
        f"Type: {meta.file_type}",
        f"Modified: {meta.last_modified.isoformat()}",
    ]
    if meta.width and meta.height:
        parts.append(f"Dimensions: {meta.width}x{meta.height} ({meta.orientation})")
    if meta.device_make or meta.device_model:
        parts.append("Camera: " + " ".join(p for p in (meta.device_make, meta.device_model) if p))
    if meta.software:
        parts.append(f"Software: {meta.software}")
    return " • ".join(parts)
