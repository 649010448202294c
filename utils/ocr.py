"""Best-effort text recognition for rendered pages.

Failures never block page creation: any error is logged and treated as
"no text".
"""
import io
import logging

import pytesseract
from PIL import Image

from utils.imaging import from_data_url

logger = logging.getLogger(__name__)


def extract_text(image_data: str, language: str = "eng") -> str | None:
    """Return recognised text for a JPEG ``data:`` URL, or None if there is none."""
    try:
        with Image.open(io.BytesIO(from_data_url(image_data))) as img:
            text = pytesseract.image_to_string(img, lang=language)
    except Exception as exc:
        logger.warning("OCR failed: %s", exc)
        return None

    text = text.strip()
    return text or None
