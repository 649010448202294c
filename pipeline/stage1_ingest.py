"""Stage 1: Ingest — classify uploads and expand ZIP archives.

Input:  the files of one upload batch, in any order
Output: a flat list of UploadedFile, archives replaced by their entries,
        sorted by filename (this order becomes the page order)

A corrupt archive fails the whole batch with ProcessingError.
"""
import io
import logging
import zipfile
import zlib

from models.upload import FileKind, UploadedFile
from pipeline.errors import ProcessingError
from settings import Settings

logger = logging.getLogger(__name__)

_ZIP_MIME_TYPES = frozenset({"application/zip", "application/x-zip-compressed"})
_PDF_EXTENSIONS = frozenset({".pdf"})
_IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff", ".heic", ".heif",
})

# Extension → MIME type for ZIP entries, which carry no declared type
_MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".pdf": "application/pdf",
}


def run(settings: Settings, files: list[UploadedFile]) -> list[UploadedFile]:
    """Drop oversized uploads, expand archives and return the sorted file list."""
    accepted: list[UploadedFile] = []
    for file in files:
        if file.size > settings.max_upload_bytes:
            logger.warning(
                "Skipping %s: %d bytes exceeds the %d MB upload limit",
                file.name, file.size, settings.max_upload_mb,
            )
            continue
        accepted.append(file)

    expanded = expand_files(accepted)

    logger.info("Stage 1 complete")
    logger.info("  Uploaded files: %d", len(files))
    logger.info("  After expansion: %d", len(expanded))
    return expanded


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_archive(file: UploadedFile) -> bool:
    return file.content_type in _ZIP_MIME_TYPES or file.name.lower().endswith(".zip")


def is_document(file: UploadedFile) -> bool:
    return file.content_type == "application/pdf" or _has_extension(file.name, _PDF_EXTENSIONS)


def is_image(file: UploadedFile) -> bool:
    return file.content_type.startswith("image/") or _has_extension(file.name, _IMAGE_EXTENSIONS)


def classify(file: UploadedFile) -> FileKind:
    """Archive first, then document, then image; first match wins."""
    if is_archive(file):
        return "archive"
    if is_document(file):
        return "document"
    if is_image(file):
        return "image"
    return "unsupported"


def _has_extension(name: str, extensions: frozenset[str]) -> bool:
    lower = name.lower()
    return any(lower.endswith(ext) for ext in extensions)


# ---------------------------------------------------------------------------
# Archive expansion
# ---------------------------------------------------------------------------

def expand_files(files: list[UploadedFile]) -> list[UploadedFile]:
    """Replace every archive with its entries and sort the result by name."""
    expanded: list[UploadedFile] = []
    for file in files:
        if is_archive(file):
            expanded.extend(_expand_archive(file))
        else:
            expanded.append(file)
    return sorted(expanded, key=lambda f: f.name)


def _expand_archive(archive: UploadedFile) -> list[UploadedFile]:
    try:
        with zipfile.ZipFile(io.BytesIO(archive.data)) as zf:
            entries = sorted(
                (
                    info for info in zf.infolist()
                    if not info.is_dir() and not _is_resource_fork(info.filename)
                ),
                key=lambda info: info.filename,
            )
            result = [_entry_to_file(info.filename, zf.read(info)) for info in entries]
    except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, OSError, EOFError) as exc:
        raise ProcessingError(f"Could not read archive {archive.name}: {exc}") from exc

    logger.debug("Expanded %s → %d entries", archive.name, len(result))
    return result


def _is_resource_fork(entry_name: str) -> bool:
    # macOS archivers add __MACOSX/ and ._name entries holding Finder metadata
    base_name = entry_name.rsplit("/", 1)[-1]
    return entry_name.startswith("__MACOSX/") or base_name.startswith("._")


def _entry_to_file(entry_name: str, data: bytes) -> UploadedFile:
    base_name = entry_name.rsplit("/", 1)[-1] or entry_name
    return UploadedFile(name=base_name, content_type=guess_content_type(base_name), data=data)


def guess_content_type(name: str) -> str:
    """Infer a MIME type from a filename; empty for unknown extensions."""
    lower = name.lower()
    for ext, mime in _MIME_BY_EXTENSION.items():
        if lower.endswith(ext):
            return mime
    return ""
