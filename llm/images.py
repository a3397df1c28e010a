from __future__ import annotations

import base64
import logging
from collections.abc import Iterable
from io import BytesIO
from pathlib import Path

from PIL import Image

logger = logging.getLogger("Hush.Images")

ImageSource = Image.Image | bytes | str | Path
JPEG_QUALITY = 80


def encode_image_to_base64(image: ImageSource, quality: int = JPEG_QUALITY) -> str | None:
    """JPEG + base64 для вложения в запрос; None, если картинку не удалось прочитать."""
    try:
        if isinstance(image, Image.Image):
            return _encode_jpeg(image, quality)
        if isinstance(image, bytes):
            with Image.open(BytesIO(image)) as img:
                return _encode_jpeg(img, quality)
        with Image.open(Path(image)) as img:
            return _encode_jpeg(img, quality)
    except (OSError, ValueError) as exc:
        logger.warning("Image skipped, cannot encode as JPEG: %s", exc)
        return None


def encode_images(images: Iterable[ImageSource]) -> list[str]:
    encoded: list[str] = []
    for image in images:
        data = encode_image_to_base64(image)
        if data is not None:
            encoded.append(data)
    return encoded


def _encode_jpeg(img: Image.Image, quality: int) -> str:
    rgb = img if img.mode == "RGB" else img.convert("RGB")
    buffer = BytesIO()
    rgb.save(buffer, format="JPEG", quality=quality)
    return base64.b64encode(buffer.getvalue()).decode("ascii")
