from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from PIL import Image, UnidentifiedImageError
import piexif
import io


MIME_FOR_FORMAT = {"JPEG": "image/jpeg", "PNG": "image/png", "GIF": "image/gif", "WEBP": "image/webp"}
EXT_FOR_MIME = {"image/jpeg": "jpg", "image/png": "png", "image/gif": "gif", "image/webp": "webp"}


@dataclass
class ImageInspection:
    mime: str
    width: int
    height: int
    exif: dict = field(default_factory=dict)


def sniff_mime(data: bytes) -> str | None:
    # Trust the decoder, not the client-declared content type
    try:
        with Image.open(io.BytesIO(data)) as img:
            return MIME_FOR_FORMAT.get(img.format or "")
    except Exception:
        return None


def _text(raw) -> str | None:
    if isinstance(raw, bytes):
        raw = raw.decode(errors="ignore")
    if isinstance(raw, str):
        raw = raw.replace("\x00", "").strip()
        return raw or None
    return None


def _parse_exif_datetime(raw) -> datetime | None:
    # Format "YYYY:MM:DD HH:MM:SS", wall clock of the capturing device
    s = _text(raw)
    if not s or len(s) < 19:
        return None
    try:
        return datetime(int(s[0:4]), int(s[5:7]), int(s[8:10]), int(s[11:13]), int(s[14:16]), int(s[17:19]))
    except ValueError:
        return None


def read_exif(data: bytes) -> dict:
    """
    Camera fields from EXIF, when the file has any:
    make, model, software, taken_at (naive device-local datetime).
    """
    try:
        exif = piexif.load(data)
    except Exception:
        return {}
    zeroth = exif.get("0th") or {}
    exif_ifd = exif.get("Exif") or {}
    out = {
        "make": _text(zeroth.get(piexif.ImageIFD.Make)),
        "model": _text(zeroth.get(piexif.ImageIFD.Model)),
        "software": _text(zeroth.get(piexif.ImageIFD.Software)),
        "taken_at": _parse_exif_datetime(
            exif_ifd.get(piexif.ExifIFD.DateTimeOriginal) or zeroth.get(piexif.ImageIFD.DateTime)
        ),
    }
    return {k: v for k, v in out.items() if v is not None}


def inspect_image(data: bytes) -> ImageInspection:
    """
    Returns the detected mime, pixel dimensions and EXIF camera fields.
    Raises ValueError for anything that is not a decodable image.
    """
    mime = sniff_mime(data)
    if mime is None:
        raise ValueError("Unsupported image type")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()  # basic integrity
        with Image.open(io.BytesIO(data)) as img2:
            width, height = img2.size
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValueError("Invalid image file")
    exif = read_exif(data) if mime == "image/jpeg" else {}
    return ImageInspection(mime=mime, width=int(width), height=int(height), exif=exif)


def ext_for_mime(mime: str) -> str:
    return EXT_FOR_MIME.get(mime, "bin")
