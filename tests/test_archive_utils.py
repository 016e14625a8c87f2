from __future__ import annotations

import io
import zipfile

import pytest

from utils.archive_utils import ArchiveError, detect_content_type, read_conversion_archive

from tests.conftest import make_archive, png_bytes


class TestReadConversionArchive:
    def test_text_and_images(self):
        data = make_archive("# Paper\n1. Find x", {"fig1.png": png_bytes(), "fig2.jpg": png_bytes("blue")})
        archive = read_conversion_archive(data)

        assert archive.text == "# Paper\n1. Find x"
        assert archive.text_filename == "doc/doc.mmd"
        assert [img.filename for img in archive.images] == ["fig1.png", "fig2.jpg"]
        assert {img.content_type for img in archive.images} == {"image/png"}

    def test_mmd_preferred_over_other_text(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("notes.txt", "notes")
            zf.writestr("paper.mmd", "paper")
            zf.writestr("__MACOSX/._paper.mmd", "junk")
        assert read_conversion_archive(buf.getvalue()).text == "paper"

    def test_missing_text_payload(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("images/a.png", png_bytes())
        with pytest.raises(ArchiveError):
            read_conversion_archive(buf.getvalue())

    def test_not_a_zip(self):
        with pytest.raises(ArchiveError):
            read_conversion_archive(b"not a zip")

    def test_content_type_falls_back_to_extension(self):
        assert detect_content_type(b"not an image", "a.jpeg") == "image/jpeg"
        assert detect_content_type(b"not an image", "a.unknownext") == "application/octet-stream"
