"""
Reading conversion result archives (one text file plus images, zipped).
"""

import io
import mimetypes
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

# Preferred text payloads, best first
TEXT_SUFFIXES = (".mmd", ".md", ".txt")
IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".tif", ".tiff")


class ArchiveError(ValueError):
    """The archive is unreadable or has no text payload."""


@dataclass
class ArchiveImage:
    filename: str
    data: bytes
    content_type: str


@dataclass
class ConversionArchive:
    text: str
    text_filename: str
    images: List[ArchiveImage] = field(default_factory=list)


def detect_content_type(data: bytes, filename: str) -> str:
    """MIME type from the image bytes, falling back to the file extension."""
    image_format: Optional[str] = None
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format
    except (UnidentifiedImageError, OSError):
        pass

    if image_format and image_format in Image.MIME:
        return Image.MIME[image_format]
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


def read_conversion_archive(data: bytes) -> ConversionArchive:
    """
    Pull the text payload and all images out of a result archive.

    Image names are reduced to their base name; if two entries share a base
    name the first one is kept.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"Result archive is not a valid zip: {e}") from e

    text_entries = {}
    images: List[ArchiveImage] = []
    seen_images = set()

    with archive:
        for info in archive.infolist():
            if info.is_dir() or info.filename.startswith("__MACOSX/"):
                continue
            path = PurePosixPath(info.filename)
            suffix = path.suffix.lower()

            if suffix in TEXT_SUFFIXES:
                text_entries.setdefault(suffix, info.filename)
            elif suffix in IMAGE_SUFFIXES and path.name not in seen_images:
                seen_images.add(path.name)
                image_bytes = archive.read(info.filename)
                images.append(ArchiveImage(
                    filename=path.name,
                    data=image_bytes,
                    content_type=detect_content_type(image_bytes, path.name),
                ))

        for suffix in TEXT_SUFFIXES:
            if suffix in text_entries:
                name = text_entries[suffix]
                text = archive.read(name).decode("utf-8", errors="replace")
                return ConversionArchive(text=text, text_filename=name, images=images)

    raise ArchiveError("Result archive has no text payload")
