"""Stage 2: Image normalization — one uploaded image → one page-ready image pair.

Steps, in order:
  a. HEIC/HEIF is decoded via pillow-heif and re-encoded as JPEG
  b. oversized files (≥ 4 MiB) are downscaled/recompressed to a 3 MiB budget
  c. the EXIF orientation is applied (explicit 8-entry lookup table)
  d. the long edge is capped at 2048 px (never upscaled)
  e. the full image is encoded as JPEG q88
  f. a thumbnail (long edge ≤ 480 px) is encoded as JPEG q75
  g. the orientation category is derived from the final dimensions

An undecodable image raises ProcessingError. An unreadable orientation tag is
not fatal; the image is treated as upright.
"""
import io
import logging

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from models.page import NormalizedImage, determine_orientation
from models.upload import UploadedFile
from pipeline.errors import ProcessingError
from utils.imaging import encode_jpeg, scale_to_long_edge, to_data_url

register_heif_opener()

logger = logging.getLogger(__name__)

TARGET_LONG_EDGE = 2048
THUMB_LONG_EDGE = 480
NORMALIZED_DPI = 300

_FULL_QUALITY = 88
_THUMB_QUALITY = 75
_HEIF_CONVERT_QUALITY = 92

_HEIF_MIME_TYPES = frozenset({"image/heic", "image/heif"})
_HEIF_EXTENSIONS = frozenset({".heic", ".heif"})

_COMPRESS_THRESHOLD_BYTES = 4 * 1024 * 1024
_COMPRESS_BUDGET_BYTES = 3 * 1024 * 1024
_COMPRESS_START_QUALITY = 92
_COMPRESS_QUALITY_STEP = 8
_COMPRESS_MIN_QUALITY = 40

_EXIF_ORIENTATION_TAG = 274

# DecompressionBombError is not an OSError; oversized images fail like corrupt ones
_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)

# EXIF orientation value → transform that brings the image upright
_ORIENTATION_TRANSPOSE: dict[int, Image.Transpose] = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


def normalize_image(file: UploadedFile) -> NormalizedImage:
    """Run steps a–g for a single image file."""
    data = _convert_heif_if_needed(file)
    data = _compress_if_needed(data, file.name)

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            orientation_value = read_orientation(img, file.name)
            oriented = apply_orientation(img, orientation_value)
    except _DECODE_ERRORS as exc:
        raise ProcessingError(f"Could not decode image {file.name}: {exc}") from exc

    scaled = scale_to_long_edge(oriented, TARGET_LONG_EDGE)
    thumbnail = scale_to_long_edge(scaled, THUMB_LONG_EDGE)
    width, height = scaled.size

    logger.debug(
        "Normalized %s → %dx%d (EXIF orientation %d)", file.name, width, height, orientation_value
    )
    return NormalizedImage(
        width=width,
        height=height,
        orientation=determine_orientation(width, height),
        image_data=to_data_url(encode_jpeg(scaled, _FULL_QUALITY)),
        thumbnail_data=to_data_url(encode_jpeg(thumbnail, _THUMB_QUALITY)),
        dpi=NORMALIZED_DPI,
    )


# ---------------------------------------------------------------------------
# Orientation
# ---------------------------------------------------------------------------

def read_orientation(img: Image.Image, name: str = "") -> int:
    """Return the EXIF orientation value (1–8); 1 if absent or unreadable."""
    try:
        value = int(img.getexif().get(_EXIF_ORIENTATION_TAG, 1))
    except Exception as exc:
        logger.warning("Could not read EXIF orientation for %s: %s", name, exc)
        return 1
    return value if value in _ORIENTATION_TRANSPOSE else 1


def apply_orientation(img: Image.Image, orientation_value: int) -> Image.Image:
    method = _ORIENTATION_TRANSPOSE.get(orientation_value)
    if method is None:
        return img.copy()  # detach from the file handle
    return img.transpose(method)


# ---------------------------------------------------------------------------
# Pre-processing
# ---------------------------------------------------------------------------

def _is_heif(file: UploadedFile) -> bool:
    return file.content_type in _HEIF_MIME_TYPES or file.suffix in _HEIF_EXTENSIONS


def _convert_heif_if_needed(file: UploadedFile) -> bytes:
    if not _is_heif(file):
        return file.data
    try:
        with Image.open(io.BytesIO(file.data)) as img:
            converted = encode_jpeg(img, _HEIF_CONVERT_QUALITY)
    except _DECODE_ERRORS as exc:
        raise ProcessingError(f"Could not convert HEIF image {file.name}: {exc}") from exc
    logger.debug("Converted %s from HEIF to JPEG", file.name)
    return converted


def _compress_if_needed(data: bytes, name: str) -> bytes:
    """Downscale and recompress large files until they fit the byte budget.

    Only the orientation tag of the EXIF block is carried over, so step (c)
    still sees it.
    """
    if len(data) < _COMPRESS_THRESHOLD_BYTES:
        return data
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            orientation_value = read_orientation(img, name)
            scaled = scale_to_long_edge(img.copy(), TARGET_LONG_EDGE)
    except _DECODE_ERRORS as exc:
        raise ProcessingError(f"Could not decode image {name}: {exc}") from exc

    exif = None
    if orientation_value != 1:
        exif = Image.Exif()
        exif[_EXIF_ORIENTATION_TAG] = orientation_value

    quality = _COMPRESS_START_QUALITY
    compressed = encode_jpeg(scaled, quality, exif=exif)
    while len(compressed) > _COMPRESS_BUDGET_BYTES and quality > _COMPRESS_MIN_QUALITY:
        quality -= _COMPRESS_QUALITY_STEP
        compressed = encode_jpeg(scaled, quality, exif=exif)

    logger.debug(
        "Compressed %s: %d → %d bytes (quality %d)", name, len(data), len(compressed), quality
    )
    return compressed
