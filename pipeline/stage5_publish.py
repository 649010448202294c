"""Stage 5: Publishing — persist an album and hand out its share link.

publish():
  - rejects an empty page list (EmptyAlbumError) before any side effect
  - re-indexes pages from their list position
  - generates a fresh id and slug (with a collision check against the store)
  - builds the share URL and a QR code (error correction H, 512 px, margin 1)
  - writes the complete record last, so a failure leaves nothing behind

read():
  - exact-slug lookup; None means "no such album"
"""
import logging
import secrets
from datetime import datetime, timezone

import qrcode
from PIL import Image

from models.album import AlbumRecord, CreateAlbumPayload, CreateAlbumResponse
from pipeline.errors import EmptyAlbumError
from pipeline.stage4_assemble import assemble
from settings import Settings
from utils.imaging import encode_png, to_data_url
from utils.storage import BlobStore, FileSystemStore

logger = logging.getLogger(__name__)

SHARE_PATH = "/album"

_ID_BYTES = 9     # 12 url-safe characters
_SLUG_BYTES = 6   # 8 url-safe characters
_MAX_SLUG_ATTEMPTS = 5

_QR_SIZE_PX = 512
_QR_BORDER = 1
_QR_DARK = "#111111"
_QR_LIGHT = "#ffffff"

Store = FileSystemStore | BlobStore


def publish(settings: Settings, store: Store, payload: CreateAlbumPayload) -> CreateAlbumResponse:
    """Create the album record and persist it. Returns the share details."""
    if not payload.pages:
        raise EmptyAlbumError("At least one page is required")

    sequence = assemble(payload.pages)
    slug = _new_slug(store)
    share_url = share_url_for(settings, slug)

    record = AlbumRecord(
        id=secrets.token_urlsafe(_ID_BYTES),
        slug=slug,
        title=payload.title,
        created_at=datetime.now(timezone.utc),
        page_count=sequence.page_count,
        dominant_orientation=sequence.dominant_orientation,
        double_page_spreads=sequence.double_page_spreads,
        share_url=share_url,
        thumbnail=sequence.pages[0].thumbnail_data,
        pages=sequence.pages,
    )
    qr_png = make_qr_data_url(share_url)

    store.write(slug, record.model_dump_json(indent=2))

    logger.info("Stage 5 complete → %s", share_url)
    logger.info("  Title: %s", record.title)
    logger.info("  Pages: %d", record.page_count)

    return CreateAlbumResponse(
        id=record.id,
        slug=slug,
        share_url=share_url,
        qr_png=qr_png,
        metadata=record.metadata(),
    )


def read(store: Store, slug: str) -> AlbumRecord | None:
    raw = store.read(slug)
    if raw is None:
        logger.debug("Album not found: %s", slug)
        return None
    return AlbumRecord.model_validate_json(raw)


# ---------------------------------------------------------------------------
# Identifiers and URLs
# ---------------------------------------------------------------------------

def _new_slug(store: Store) -> str:
    for _ in range(_MAX_SLUG_ATTEMPTS):
        slug = _random_slug()
        if not store.exists(slug):
            return slug
        logger.warning("Slug collision on %s; generating another", slug)
    raise RuntimeError(f"Could not find a free slug after {_MAX_SLUG_ATTEMPTS} attempts")


def _random_slug() -> str:
    # A leading "-" would read as an option on the command line
    while True:
        slug = secrets.token_urlsafe(_SLUG_BYTES)
        if not slug.startswith("-"):
            return slug


def share_url_for(settings: Settings, slug: str) -> str:
    return f"{settings.share_origin}{SHARE_PATH}/{slug}"


# ---------------------------------------------------------------------------
# QR code
# ---------------------------------------------------------------------------

def make_qr_image(url: str) -> Image.Image:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        border=_QR_BORDER,
    )
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color=_QR_DARK, back_color=_QR_LIGHT).get_image()
    return img.convert("RGB").resize((_QR_SIZE_PX, _QR_SIZE_PX), Image.Resampling.NEAREST)


def make_qr_data_url(url: str) -> str:
    return to_data_url(encode_png(make_qr_image(url)), mime="image/png")
