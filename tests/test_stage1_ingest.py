import io
import zipfile

import pytest

from models.upload import UploadedFile
from pipeline import stage1_ingest
from pipeline.errors import ProcessingError
from pipeline.stage1_ingest import classify, expand_files, guess_content_type


def _file(name: str, content_type: str = "", data: bytes = b"x") -> UploadedFile:
    return UploadedFile(name=name, content_type=content_type, data=data)


def _zip(entries: dict[str, bytes], name: str = "batch.zip") -> UploadedFile:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for entry_name, data in entries.items():
            zf.writestr(entry_name, data)
    return UploadedFile(name=name, content_type="application/zip", data=buf.getvalue())


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestClassify:
    @pytest.mark.parametrize("name,content_type", [
        ("photos.zip", ""),
        ("photos.ZIP", "application/octet-stream"),
        ("upload", "application/zip"),
        ("upload", "application/x-zip-compressed"),
    ])
    def test_archive(self, name, content_type):
        assert classify(_file(name, content_type)) == "archive"

    @pytest.mark.parametrize("name,content_type", [
        ("report.pdf", ""),
        ("REPORT.PDF", ""),
        ("scan", "application/pdf"),
    ])
    def test_document(self, name, content_type):
        assert classify(_file(name, content_type)) == "document"

    @pytest.mark.parametrize("name,content_type", [
        ("photo.jpg", ""),
        ("photo.JPEG", ""),
        ("photo.heic", ""),
        ("photo.tiff", ""),
        ("blob", "image/webp"),
    ])
    def test_image(self, name, content_type):
        assert classify(_file(name, content_type)) == "image"

    def test_unsupported(self):
        assert classify(_file("notes.txt", "text/plain")) == "unsupported"

    def test_archive_wins_over_image_type(self):
        assert classify(_file("pictures.zip", "image/jpeg")) == "archive"

    def test_document_wins_over_image_type(self):
        assert classify(_file("scan.pdf", "image/png")) == "document"


class TestGuessContentType:
    def test_known_extensions(self):
        assert guess_content_type("a.JPG") == "image/jpeg"
        assert guess_content_type("a.png") == "image/png"
        assert guess_content_type("a.heif") == "image/heif"
        assert guess_content_type("a.pdf") == "application/pdf"

    def test_unknown_extension_is_empty(self):
        assert guess_content_type("readme.txt") == ""
        assert guess_content_type("noext") == ""


# ---------------------------------------------------------------------------
# Archive expansion
# ---------------------------------------------------------------------------

class TestExpandFiles:
    def test_entries_and_uploads_are_sorted_together(self):
        archive = _zip({"b.png": b"b", "a/c.jpg": b"c"})
        result = expand_files([archive, _file("a.png")])
        assert [f.name for f in result] == ["a.png", "b.png", "c.jpg"]

    def test_entry_keeps_only_basename_and_gets_type(self):
        archive = _zip({"deep/nested/photo.jpg": b"jpegbytes"})
        [entry] = expand_files([archive])
        assert entry.name == "photo.jpg"
        assert entry.content_type == "image/jpeg"
        assert entry.data == b"jpegbytes"

    def test_directories_are_skipped(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("folder/", b"")
            zf.writestr("folder/page.png", b"p")
        archive = UploadedFile(name="a.zip", content_type="application/zip", data=buf.getvalue())
        assert [f.name for f in expand_files([archive])] == ["page.png"]

    def test_resource_forks_are_skipped(self):
        archive = _zip({
            "__MACOSX/._page.png": b"meta",
            "._other.png": b"meta",
            "page.png": b"p",
        })
        assert [f.name for f in expand_files([archive])] == ["page.png"]

    def test_unknown_entries_pass_through_untyped(self):
        archive = _zip({"notes.txt": b"hello"})
        [entry] = expand_files([archive])
        assert entry.content_type == ""
        assert classify(entry) == "unsupported"

    def test_corrupt_archive_raises(self):
        broken = _file("broken.zip", "application/zip", b"this is not a zip")
        with pytest.raises(ProcessingError, match="broken.zip"):
            expand_files([broken])

    def test_non_archives_untouched(self):
        pdf = _file("doc.pdf", "application/pdf", b"%PDF")
        assert expand_files([pdf]) == [pdf]


# ---------------------------------------------------------------------------
# run()
# ---------------------------------------------------------------------------

class TestRun:
    def test_oversized_files_are_dropped(self, settings):
        settings.max_upload_mb = 1
        big = _file("big.jpg", "image/jpeg", b"0" * (1024 * 1024 + 1))
        small = _file("small.jpg", "image/jpeg", b"0")
        result = stage1_ingest.run(settings, [big, small])
        assert [f.name for f in result] == ["small.jpg"]

    def test_run_expands_archives(self, settings):
        archive = _zip({"2.png": b"2", "1.png": b"1"})
        result = stage1_ingest.run(settings, [archive])
        assert [f.name for f in result] == ["1.png", "2.png"]

    def test_empty_batch(self, settings):
        assert stage1_ingest.run(settings, []) == []
