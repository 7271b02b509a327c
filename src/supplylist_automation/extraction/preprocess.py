"""Best-effort shrinking of captured images before they go to the extractor."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageOps

from ..logging import get_logger

LOG = get_logger("preprocess")

TARGET_WIDTH = 600
WEBP_QUALITY = 50
JPEG_QUALITY = 50

_DATA_URL_RE = re.compile(r"^\s*data:image/[\w.+-]+;base64,", re.IGNORECASE)


@dataclass(frozen=True)
class PreparedImage:
    data: str  # base64 payload, no data URL prefix
    mime_type: str
    original_bytes: int
    optimized_bytes: int

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    @property
    def reduction_pct(self) -> int:
        if not self.original_bytes:
            return 0
        return round((1 - self.optimized_bytes / self.original_bytes) * 100)

    def raw_bytes(self) -> bytes:
        return _decode_b64(self.data) or b""


def strip_data_url(payload: str) -> str:
    """Remove a leading `data:image/...;base64,` prefix if present."""
    return _DATA_URL_RE.sub("", payload or "", count=1).strip()


def sniff_mime(raw: bytes) -> str:
    if raw.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if raw.startswith(b"\x89PNG"):
        return "image/png"
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    if raw.startswith(b"GIF8"):
        return "image/gif"
    return "image/jpeg"


def _decode_b64(data: str) -> Optional[bytes]:
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        LOG.warning(f"Image payload is not valid base64: {e}")
        return None


def _read_image(raw: bytes):
    """Decode bytes into a BGR array, honouring EXIF orientation when Pillow can read it."""
    try:
        im = Image.open(BytesIO(raw))
        im = ImageOps.exif_transpose(im)
        return cv2.cvtColor(np.array(im.convert("RGB")), cv2.COLOR_RGB2BGR)
    except Exception:
        data = np.frombuffer(raw, dtype=np.uint8)
        return cv2.imdecode(data, cv2.IMREAD_COLOR)


def _fit_width(bgr, target_width: int):
    h, w = bgr.shape[:2]
    if w <= target_width:
        return bgr
    scale = target_width / float(w)
    return cv2.resize(bgr, (target_width, max(1, int(h * scale))), interpolation=cv2.INTER_AREA)


def _encode(bgr, ext: str, params) -> Optional[bytes]:
    ok, buf = cv2.imencode(ext, bgr, params)
    if not ok:
        LOG.debug(f"cv2.imencode failed for {ext}")
        return None
    return buf.tobytes()


def optimize_image(data: str, *, target_width: int = TARGET_WIDTH) -> PreparedImage:
    """Downscale and re-encode a base64 image; fall back to the original on any problem.

    WebP is tried first, then JPEG. A candidate is only used when it is smaller than the
    original payload.
    """
    raw = _decode_b64(data)
    if not raw:
        return PreparedImage(data=data, mime_type="image/jpeg", original_bytes=0, optimized_bytes=0)
    original = PreparedImage(data=data, mime_type=sniff_mime(raw), original_bytes=len(raw), optimized_bytes=len(raw))

    try:
        bgr = _read_image(raw)
        if bgr is None:
            LOG.warning("Could not decode image for optimization; using original payload")
            return original
        resized = _fit_width(bgr, target_width)

        candidate = _encode(resized, ".webp", [cv2.IMWRITE_WEBP_QUALITY, WEBP_QUALITY])
        mime = "image/webp"
        if candidate is None or len(candidate) >= len(raw):
            LOG.info("WebP optimization did not reduce size, trying JPEG...")
            candidate = _encode(
                resized,
                ".jpg",
                [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY, cv2.IMWRITE_JPEG_PROGRESSIVE, 1, cv2.IMWRITE_JPEG_OPTIMIZE, 1],
            )
            mime = "image/jpeg"
        if candidate is None or len(candidate) >= len(raw):
            LOG.info("Optimization increased size, using original image")
            return original
    except Exception as e:
        LOG.warning(f"Image optimization error: {e}; using original payload")
        return original

    return PreparedImage(
        data=base64.b64encode(candidate).decode("ascii"),
        mime_type=mime,
        original_bytes=len(raw),
        optimized_bytes=len(candidate),
    )


def prepare_payload(payload: str, *, optimize: bool = True, target_width: int = TARGET_WIDTH) -> PreparedImage:
    """Strip any data URL prefix and optionally shrink the image. Never raises."""
    data = strip_data_url(payload)
    if not optimize:
        raw = _decode_b64(data) or b""
        return PreparedImage(data=data, mime_type=sniff_mime(raw), original_bytes=len(raw), optimized_bytes=len(raw))

    prepared = optimize_image(data, target_width=target_width)
    LOG.info(
        f"Image size: {prepared.original_bytes} -> {prepared.optimized_bytes} bytes "
        f"(~{-(-prepared.optimized_bytes // 3)} tokens, reduction {prepared.reduction_pct}%)"
    )
    return prepared
