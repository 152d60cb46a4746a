from __future__ import annotations

import base64
import logging
import posixpath
import xml.etree.ElementTree as ET
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path

"""Container image extractor.

An .xlsx file is a zip package of XML parts. Pictures pasted into cells are
not reachable through the cell grid; they live in the drawing part:

    xl/drawings/drawing1.xml            anchors (from.row) + blip r:embed="rIdN"
    xl/drawings/_rels/drawing1.xml.rels rIdN -> ../media/imageK.png
    xl/media/imageK.png                 raw bytes

extract_embedded_images() walks that chain once per workbook and returns a
drawing-row -> image map. Extraction is best effort: an unreadable archive or
a malformed anchor degrades to "no image" instead of failing the import.
Each anchor yields an AnchorOk or AnchorSkipped so the caller can log and
count what was dropped.
"""

__all__ = [
    "ImportedImage",
    "AnchorBinding",
    "AnchorOk",
    "AnchorSkipped",
    "ImageExtraction",
    "DEFAULT_DRAWING_PART",
    "mime_type_for",
    "parse_relationships",
    "parse_anchors",
    "extract_embedded_images",
]

logger = logging.getLogger(__name__)

DEFAULT_DRAWING_PART = "xl/drawings/drawing1.xml"
MEDIA_DIR = "xl/media/"

NS = {
    "xdr": "http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "rel": "http://schemas.openxmlformats.org/package/2006/relationships",
}
R_EMBED = "{http://schemas.openxmlformats.org/officeDocument/2006/relationships}embed"
# absoluteAnchor は行座標を持たないので対象外
ANCHOR_TAGS = {
    f"{{{NS['xdr']}}}twoCellAnchor",
    f"{{{NS['xdr']}}}oneCellAnchor",
}


def mime_type_for(file_name: str) -> str:
    # 拡張子のみで判定。png 以外は jpeg 扱い
    return "image/png" if posixpath.splitext(file_name)[1].lower() == ".png" else "image/jpeg"


@dataclass(frozen=True)
class ImportedImage:
    media_file_name: str
    mime_type: str
    content: bytes = field(repr=False)

    @classmethod
    def from_bytes(cls, file_name: str, content: bytes) -> ImportedImage:
        return cls(media_file_name=file_name, mime_type=mime_type_for(file_name), content=content)

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class AnchorBinding:
    drawing_row: int  # 0-based sheet row from <xdr:from><xdr:row>
    relationship_id: str


@dataclass(frozen=True)
class AnchorOk:
    binding: AnchorBinding


@dataclass(frozen=True)
class AnchorSkipped:
    position: int  # anchor order within the drawing part
    reason: str


AnchorResult = AnchorOk | AnchorSkipped


@dataclass
class ImageExtraction:
    images_by_row: dict[int, ImportedImage] = field(default_factory=dict)
    skipped: list[AnchorSkipped] = field(default_factory=list)
    error: str | None = None

    def __len__(self) -> int:
        return len(self.images_by_row)


def _rels_part_for(drawing_part: str) -> str:
    return posixpath.join(
        posixpath.dirname(drawing_part), "_rels", posixpath.basename(drawing_part) + ".rels"
    )


def _read_part(archive: zipfile.ZipFile, name: str) -> bytes | None:
    """Read one zip member; a corrupt entry (bad CRC, broken deflate) yields None."""
    try:
        return archive.read(name)
    except (zipfile.BadZipFile, zlib.error, OSError, KeyError) as e:
        logger.warning("unreadable part %s: %s", name, e)
        return None


def parse_relationships(xml_bytes: bytes) -> dict[str, str]:
    """rId -> media file name, limited to targets under the media directory."""
    root = ET.fromstring(xml_bytes)
    rels: dict[str, str] = {}
    for rel in root.findall("rel:Relationship", NS):
        rel_id = rel.attrib.get("Id")
        target = rel.attrib.get("Target")
        if not rel_id or not target or "media/" not in target:
            continue
        rels[rel_id] = posixpath.basename(target)
    return rels


def _parse_anchor(position: int, anchor: ET.Element) -> AnchorResult:
    row_node = anchor.find("xdr:from/xdr:row", NS)
    if row_node is None or row_node.text is None:
        return AnchorSkipped(position, "anchor has no from/row")
    try:
        row = int(row_node.text.strip())
    except ValueError:
        return AnchorSkipped(position, f"non-numeric row {row_node.text!r}")
    if anchor.find("xdr:pic", NS) is None:
        return AnchorSkipped(position, "anchor is not a picture")
    blip = anchor.find("xdr:pic/xdr:blipFill/a:blip", NS)
    if blip is None:
        return AnchorSkipped(position, "picture has no blip")
    rel_id = blip.attrib.get(R_EMBED)
    if not rel_id:
        return AnchorSkipped(position, "blip has no r:embed")
    return AnchorOk(AnchorBinding(drawing_row=row, relationship_id=rel_id))


def parse_anchors(xml_bytes: bytes) -> list[AnchorResult]:
    root = ET.fromstring(xml_bytes)
    anchors = [el for el in root if el.tag in ANCHOR_TAGS]
    return [_parse_anchor(pos, a) for pos, a in enumerate(anchors)]


def extract_embedded_images(
    path: Path, drawing_part: str = DEFAULT_DRAWING_PART
) -> ImageExtraction:
    """Map drawing rows to embedded images for one workbook.

    Never raises for archive or XML problems; ``ImageExtraction.error`` carries
    the reason when nothing could be extracted.
    """
    result = ImageExtraction()
    try:
        archive = zipfile.ZipFile(path)
    except (OSError, zipfile.BadZipFile) as e:
        result.error = f"cannot open archive: {e}"
        logger.warning("image extraction skipped: %s", result.error)
        return result

    with archive:
        names = set(archive.namelist())
        if drawing_part not in names:
            result.error = f"no drawing part {drawing_part}"
            logger.info("no embedded images: %s", result.error)
            return result

        media: dict[str, bytes] = {}
        for name in names:
            if not name.startswith(MEDIA_DIR) or name.endswith("/"):
                continue
            content = _read_part(archive, name)
            if content is not None:
                media[posixpath.basename(name)] = content

        rels_part = _rels_part_for(drawing_part)
        rels_xml = _read_part(archive, rels_part) if rels_part in names else None
        drawing_xml = _read_part(archive, drawing_part)
        if drawing_xml is None:
            result.error = f"unreadable drawing part {drawing_part}"
            logger.warning("image extraction skipped: %s", result.error)
            return result
        try:
            rels = parse_relationships(rels_xml) if rels_xml is not None else {}
            anchors = parse_anchors(drawing_xml)
        except ET.ParseError as e:
            result.error = f"malformed drawing xml: {e}"
            logger.warning("image extraction skipped: %s", result.error)
            return result

    logger.debug("media=%d relationships=%d anchors=%d", len(media), len(rels), len(anchors))

    for pos, item in enumerate(anchors):
        if isinstance(item, AnchorSkipped):
            result.skipped.append(item)
            continue
        binding = item.binding
        file_name = rels.get(binding.relationship_id)
        if file_name is None:
            result.skipped.append(
                AnchorSkipped(pos, f"row {binding.drawing_row}: unknown relationship {binding.relationship_id}")
            )
            continue
        content = media.get(file_name)
        if content is None:
            result.skipped.append(AnchorSkipped(pos, f"row {binding.drawing_row}: media {file_name} missing"))
            continue
        # 同一行に複数画像がある場合は後勝ち
        result.images_by_row[binding.drawing_row] = ImportedImage.from_bytes(file_name, content)

    return result
