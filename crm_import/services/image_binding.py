from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..excel.images import ImageExtraction, ImportedImage
from ..models.records import LogicalRecord

"""Row-image binder.

The extractor keys images by drawing row (0-based, fixed by sheet geometry).
Records know their position relative to the detected header. The binder
translates between the two:

    absolute_row = header_row + 1 + record.data_index

When a workbook has no embedded pictures but an external folder of photos is
supplied, images are paired positionally instead: folder files sorted by name
against catalog items in creation order.
"""

__all__ = [
    "IMAGE_SUFFIXES",
    "FolderPairing",
    "absolute_row",
    "bind_images",
    "load_image_file",
    "list_folder_images",
    "pair_folder_images",
]

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")


def absolute_row(header_row: int, data_index: int) -> int:
    return header_row + 1 + data_index


def bind_images(
    records: Iterable[LogicalRecord], extraction: ImageExtraction, header_row: int
) -> dict[int, ImportedImage]:
    """record.data_index -> image, for records whose row has an anchored picture."""
    bound: dict[int, ImportedImage] = {}
    if not extraction.images_by_row:
        return bound
    for record in records:
        image = extraction.images_by_row.get(absolute_row(header_row, record.data_index))
        if image is not None:
            bound[record.data_index] = image
    unused = len(extraction.images_by_row) - len(bound)
    if unused > 0:
        logger.debug("%d embedded images are not on a record row", unused)
    return bound


def load_image_file(path: Path) -> ImportedImage:
    return ImportedImage.from_bytes(path.name, path.read_bytes())


def list_folder_images(images_dir: Path) -> list[Path]:
    return sorted(
        (p for p in images_dir.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES),
        key=lambda p: p.name,
    )


@dataclass
class FolderPairing:
    pairs: list[tuple[int, Path]] = field(default_factory=list)  # (item id, image path)
    extra_images: int = 0  # more images than items
    missing_images: int = 0  # more items than images

    @property
    def mismatch(self) -> bool:
        return self.extra_images > 0 or self.missing_images > 0


def pair_folder_images(images: Sequence[Path], item_ids: Sequence[int]) -> FolderPairing:
    """Positional pairing; a count mismatch is reported, never raised."""
    count = min(len(images), len(item_ids))
    return FolderPairing(
        pairs=[(item_ids[i], images[i]) for i in range(count)],
        extra_images=max(0, len(images) - len(item_ids)),
        missing_images=max(0, len(item_ids) - len(images)),
    )
