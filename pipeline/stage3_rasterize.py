"""Stage 3: Document rasterization — one PDF → one image pair per page.

Each page is rendered with pdfplumber at 192 dpi (scale 192/72 against the PDF
reference density). The thumbnail is derived from the full raster with scale
min(1, 480 / long edge), so it is never upscaled.

A corrupt document raises ProcessingError.
"""
import io
import logging

import pdfplumber

from models.page import RenderedPage
from models.upload import UploadedFile
from pipeline.errors import ProcessingError
from utils.imaging import encode_jpeg, scale_to_long_edge, to_data_url

logger = logging.getLogger(__name__)

TARGET_DPI = 192
THUMB_LONG_EDGE = 480

_FULL_QUALITY = 88
_THUMB_QUALITY = 75


def rasterize_document(file: UploadedFile) -> list[RenderedPage]:
    """Render every page of the document, in document order."""
    rendered: list[RenderedPage] = []
    try:
        with pdfplumber.open(io.BytesIO(file.data)) as pdf:
            for page_number, page in enumerate(pdf.pages, start=1):
                rendered.append(_render_page(page))
                logger.debug("  [%s] page %d rendered", file.name, page_number)
    except Exception as exc:
        raise ProcessingError(f"Could not render document {file.name}: {exc}") from exc

    logger.info("Rendered %s: %d page(s) at %d dpi", file.name, len(rendered), TARGET_DPI)
    return rendered


def _render_page(page) -> RenderedPage:
    # to_image(resolution=...) is equivalent to a scale of resolution / 72
    raster = page.to_image(resolution=TARGET_DPI).original.convert("RGB")
    thumbnail = scale_to_long_edge(raster, THUMB_LONG_EDGE)
    width, height = raster.size
    return RenderedPage(
        image_data=to_data_url(encode_jpeg(raster, _FULL_QUALITY)),
        thumbnail_data=to_data_url(encode_jpeg(thumbnail, _THUMB_QUALITY)),
        width=width,
        height=height,
    )
