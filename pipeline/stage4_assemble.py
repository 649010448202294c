"""Stage 4: Assembly — turn the expanded file list into an ordered page sequence.

Files are processed sequentially in the order produced by Stage 1. Images
yield one page each (Stage 2); documents yield one page per document page, in
document order (Stage 3). Unsupported files are skipped with a warning.

Sequence-level derivations:
  - indices 0..N-1 in processing order
  - dominant orientation: majority vote, ties broken portrait → landscape → square
  - double-page spreads: (0, 1), (2, 3), …; an odd trailing page stays unpaired
"""
import logging
import re
import secrets
from collections.abc import Callable

from models.events import ProcessingStatus
from models.page import BookPage, Orientation, PageSequence
from models.upload import UploadedFile
from pipeline import stage1_ingest
from pipeline.stage1_ingest import classify
from pipeline.stage2_normalize import NORMALIZED_DPI, normalize_image
from pipeline.stage3_rasterize import rasterize_document
from settings import Settings
from utils.ocr import extract_text

logger = logging.getLogger(__name__)

_ORIENTATION_ORDER: tuple[Orientation, ...] = ("portrait", "landscape", "square")

StatusCallback = Callable[[ProcessingStatus], None]


def run(
    settings: Settings,
    files: list[UploadedFile],
    include_ocr: bool = False,
    on_status: StatusCallback | None = None,
) -> PageSequence:
    """Expand, normalize and assemble one upload batch.

    Raises ProcessingError if any file in the batch cannot be decoded.
    """
    emit = on_status or (lambda status: None)
    emit(ProcessingStatus(
        state="processing",
        label="Analyzing uploads…",
        sublabel="Expanding archives, sorting pages",
    ))
    expanded = stage1_ingest.run(settings, files)

    pages: list[BookPage] = []
    for file in expanded:
        kind = classify(file)
        if kind == "document":
            emit(ProcessingStatus(
                state="processing",
                label=f"Rendering {file.name}",
                sublabel="Extracting high-DPI page canvases",
            ))
            pages.extend(_document_pages(file, len(pages), include_ocr, settings))
        elif kind == "image":
            emit(ProcessingStatus(
                state="processing",
                label=f"Optimizing {file.name}",
                sublabel="Normalizing orientation & DPI",
            ))
            pages.append(_image_page(file, len(pages), include_ocr, settings))
        else:
            logger.warning("Skipping unsupported file %s (%s)", file.name, kind)

    sequence = assemble(pages)

    logger.info("Stage 4 complete")
    logger.info("  Pages:       %d", sequence.page_count)
    logger.info("  Orientation: %s", sequence.dominant_orientation)
    logger.info("  Spreads:     %d", len(sequence.double_page_spreads))
    return sequence


def assemble(pages: list[BookPage]) -> PageSequence:
    indexed = assign_indices(pages)
    return PageSequence(
        pages=indexed,
        dominant_orientation=dominant_orientation(indexed),
        double_page_spreads=build_spreads(indexed),
    )


# ---------------------------------------------------------------------------
# Sequence derivations
# ---------------------------------------------------------------------------

def assign_indices(pages: list[BookPage]) -> list[BookPage]:
    return [page.model_copy(update={"index": i}) for i, page in enumerate(pages)]


def dominant_orientation(pages: list[BookPage]) -> Orientation:
    counts = {orientation: 0 for orientation in _ORIENTATION_ORDER}
    for page in pages:
        counts[page.orientation] += 1
    # max() keeps the first maximum, so ties resolve in _ORIENTATION_ORDER
    return max(_ORIENTATION_ORDER, key=lambda orientation: counts[orientation])


def build_spreads(pages: list[BookPage]) -> list[tuple[int, int]]:
    return [
        (pages[i].index, pages[i + 1].index)
        for i in range(0, len(pages) - 1, 2)
    ]


# ---------------------------------------------------------------------------
# Per-file page construction
# ---------------------------------------------------------------------------

def _image_page(
    file: UploadedFile,
    index: int,
    include_ocr: bool,
    settings: Settings,
) -> BookPage:
    normalized = normalize_image(file)
    return BookPage(
        id=new_page_id(),
        index=index,
        name=file.name,
        width=normalized.width,
        height=normalized.height,
        dpi=normalized.dpi,
        image_data=normalized.image_data,
        thumbnail_data=normalized.thumbnail_data,
        ocr_text=_maybe_ocr(normalized.image_data, include_ocr, settings),
    )


def _document_pages(
    file: UploadedFile,
    start_index: int,
    include_ocr: bool,
    settings: Settings,
) -> list[BookPage]:
    stem = re.sub(r"\.pdf$", "", file.name, flags=re.IGNORECASE)
    pages: list[BookPage] = []
    for page_number, rendered in enumerate(rasterize_document(file), start=1):
        pages.append(BookPage(
            id=new_page_id(),
            index=start_index + page_number - 1,
            name=f"{stem}-{page_number}",
            width=rendered.width,
            height=rendered.height,
            dpi=NORMALIZED_DPI,
            image_data=rendered.image_data,
            thumbnail_data=rendered.thumbnail_data,
            ocr_text=_maybe_ocr(rendered.image_data, include_ocr, settings),
        ))
    return pages


def _maybe_ocr(image_data: str, include_ocr: bool, settings: Settings) -> str | None:
    if not include_ocr:
        return None
    return extract_text(image_data, language=settings.ocr_language)


def new_page_id() -> str:
    return secrets.token_urlsafe(16)
