"""
imaging.py – Default image optimiser: scale down to a maximum width and
re-encode as WebP.

Any callable with the signature ``(bytes) -> bytes | None`` can replace
``optimize_image`` in the media pipeline; None means the image could not be
optimised.
"""

import io
import logging
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)

MAX_WIDTH = 1200
WEBP_QUALITY = 80

OPTIMIZED_CONTENT_TYPE = "image/webp"
OPTIMIZED_SUFFIX = ".webp"


def optimize_image(data: bytes, max_width: int = MAX_WIDTH, quality: int = WEBP_QUALITY) -> Optional[bytes]:
    """Return *data* re-encoded as WebP, at most *max_width* pixels wide."""
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as src:
            src.load()
            img = src
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
            if img.width > max_width:
                height = max(1, round(img.height * max_width / img.width))
                img = img.resize((max_width, height), Image.Resampling.LANCZOS)
            out = io.BytesIO()
            img.save(out, "WEBP", quality=quality, method=6)
    except (OSError, ValueError) as exc:
        logger.warning("Image optimisation failed: %s", exc)
        return None
    return out.getvalue()
