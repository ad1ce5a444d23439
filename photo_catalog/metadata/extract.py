import logging
from pathlib import Path
from typing import Optional, Tuple

import exifread
from PIL import Image, UnidentifiedImageError

from .. import config


class MetadataExtractor:
    """
    Reads pixel dimensions without decoding image data.

    Strategies:
      - Pillow: opens lazily, so only the header is parsed.
      - exifread: fallback for RAW containers Pillow does not understand
        (CR2/NEF/ARW carry the sensor size in EXIF).
    """

    def get_dimensions(self, path: Path) -> Tuple[Optional[int], Optional[int]]:
        """
        Returns:
            (width, height), or (None, None) when neither reader succeeds.
        """
        dims = self._pillow_dimensions(path)
        if dims is None:
            dims = self._exif_dimensions(path)
        if dims is None:
            logging.debug(f"Failed to read image dimensions for: {path}")
            return None, None
        return dims

    def _pillow_dimensions(self, path: Path) -> Optional[Tuple[int, int]]:
        try:
            with Image.open(path) as im:
                width, height = im.size
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logging.debug(f"Pillow could not open {path}: {e}")
            return None
        if width <= 0 or height <= 0:
            return None
        return int(width), int(height)

    def _exif_dimensions(self, path: Path) -> Optional[Tuple[int, int]]:
        try:
            with Path(path).open('rb') as f:
                # details=False skips maker notes and thumbnails
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            logging.debug(f"ExifRead failed for {path}: {e}")
            return None

        for width_tag, height_tag in config.DIMENSION_TAGS:
            if width_tag in tags and height_tag in tags:
                width = self._tag_int(tags[width_tag])
                height = self._tag_int(tags[height_tag])
                if width and height:
                    return width, height
        return None

    def _tag_int(self, tag) -> Optional[int]:
        values = getattr(tag, 'values', None)
        if isinstance(values, (list, tuple)) and values:
            value = values[0]
        else:
            value = str(tag).strip()
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
