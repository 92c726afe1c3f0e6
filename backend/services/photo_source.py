"""
Photo sources: where the scanner pulls PhotoRecords from.

Any object with `fetch(time_range) -> List[PhotoRecord]` works. Sources raise
PhotoAccessDeniedError when the library cannot be read at all; an empty list
just means there are no photos in the range.
"""
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, List

from domain.errors import PhotoAccessDeniedError
from domain.models import PhotoRecord, TimeRange
from services.metadata_extractor import extract_capture_info

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".heic", ".heif", ".tif", ".tiff", ".webp"}


class InMemoryPhotoSource:
    """Fixed snapshot of records, handy for imports and tests."""

    def __init__(self, photos: Iterable[PhotoRecord] = ()):
        self.photos: List[PhotoRecord] = list(photos)

    def fetch(self, time_range: TimeRange) -> List[PhotoRecord]:
        return list(self.photos)


class DirectoryPhotoSource:
    """
    Photo library backed by a directory tree of image files.

    Photo ids are paths relative to the root, so they stay stable across
    scans. Capture time comes from EXIF, falling back to the file's mtime;
    coordinates come from EXIF GPS only.
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def fetch(self, time_range: TimeRange) -> List[PhotoRecord]:
        if not self.root.is_dir() or not os.access(self.root, os.R_OK | os.X_OK):
            raise PhotoAccessDeniedError(f"Photo library not readable: {self.root}")

        records: List[PhotoRecord] = []
        skipped = 0
        for path in sorted(self.root.rglob("*")):
            if not path.is_file() or path.suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            taken_at, coordinate = extract_capture_info(str(path))
            if taken_at is None:
                try:
                    taken_at = datetime.fromtimestamp(path.stat().st_mtime)
                except OSError:
                    skipped += 1
                    continue
            records.append(
                PhotoRecord(
                    id=path.relative_to(self.root).as_posix(),
                    timestamp=taken_at,
                    coordinate=coordinate,
                )
            )
        if skipped:
            logger.warning("Skipped %s unreadable files under %s", skipped, self.root)
        logger.info("Read %s photos from %s", len(records), self.root)
        return records
