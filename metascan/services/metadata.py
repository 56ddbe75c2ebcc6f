"""
Metadata Extraction Service for MetaScan
========================================
Parses embedded metadata blocks out of raw image bytes with Pillow.

Blocks (each optional, kept separate for forensic clarity):
- primary_image_directory: IFD0 (Make, Model, Software, ModifyDate)
- capture_exif: Exif IFD (LensModel, BodySerialNumber, DateTimeOriginal, CreateDate)
- gps: GPS IFD plus decimal latitude/longitude
- extensible_metadata: XMP packet (CreatorTool, ...)
- press_metadata: IPTC records
- color_profile: ICC profile header
- jfif: JFIF APP0 segment

Missing metadata is normal (social platforms strip it on upload); only a
payload Pillow cannot open at all is reported as a parse error.
"""

import io
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, IptcImagePlugin, UnidentifiedImageError
from PIL.ExifTags import GPSTAGS, IFD, TAGS

from metascan.utils import clean_tag_value

logger = logging.getLogger(__name__)


# Pillow tag names that are renamed to the names forensic tooling reports
IFD0_RENAMES = {"DateTime": "ModifyDate"}
EXIF_RENAMES = {"DateTimeDigitized": "CreateDate"}

# Sub-IFD pointers are not tags in their own right
IFD_POINTERS = {IFD.Exif, IFD.GPSInfo, IFD.Interop}

XMP_APP1_HEADER = b"http://ns.adobe.com/xap/1.0/\x00"
XMP_INFO_KEYS = ("xmp", "XML:com.adobe.xmp")
XMP_TIFF_TAG = 700
# RDF plumbing attributes carry no descriptive value
XMP_STRUCTURAL = {"about", "parseType", "resource", "lang"}
XMP_CONTAINERS = {"Seq", "Bag", "Alt"}

IPTC_DATASETS = {
    (2, 5): "ObjectName",
    (2, 25): "Keywords",
    (2, 55): "DateCreated",
    (2, 60): "TimeCreated",
    (2, 80): "Byline",
    (2, 85): "BylineTitle",
    (2, 90): "City",
    (2, 101): "Country",
    (2, 105): "Headline",
    (2, 110): "Credit",
    (2, 115): "Source",
    (2, 116): "CopyrightNotice",
    (2, 120): "Caption",
}


class MetadataParseError(Exception):
    """Payload has no container Pillow can read metadata from."""
    pass


# ============================================================
# Data Models
# ============================================================

@dataclass
class MetadataBlock:
    """One parsed metadata block: tag name -> tag value."""
    name: str
    tags: Dict[str, Any] = field(default_factory=dict)

    def get(self, tag: str) -> Any:
        """Returns a tag value, or None when absent or empty."""
        value = self.tags.get(tag)
        if value is None or value == "" or value == []:
            return None
        return value

    def __contains__(self, tag: str) -> bool:
        return self.get(tag) is not None


@dataclass
class MetadataBundle:
    """All metadata blocks found in a payload. None means the block is absent."""
    primary_image_directory: Optional[MetadataBlock] = None
    capture_exif: Optional[MetadataBlock] = None
    gps: Optional[MetadataBlock] = None
    extensible_metadata: Optional[MetadataBlock] = None
    press_metadata: Optional[MetadataBlock] = None
    color_profile: Optional[MetadataBlock] = None
    jfif: Optional[MetadataBlock] = None

    @classmethod
    def empty(cls) -> "MetadataBundle":
        return cls()

    def tag(self, block: str, tag: str) -> Any:
        """Looks up a tag in a named block; None if either is missing."""
        container = getattr(self, block)
        if container is None:
            return None
        return container.get(tag)

    def has_block(self, block: str) -> bool:
        return getattr(self, block) is not None

    def present_blocks(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]

    def is_empty(self) -> bool:
        return not self.present_blocks()


# ============================================================
# Block Parsers
# ============================================================

def _named_tags(
    raw: Dict[int, Any],
    names: Dict[int, str],
    renames: Dict[str, str],
    skip: Optional[set] = None
) -> Dict[str, Any]:
    tags = {}
    for tag_id, value in raw.items():
        if skip and tag_id in skip:
            continue
        name = names.get(tag_id, str(tag_id))
        tags[renames.get(name, name)] = clean_tag_value(value)
    return tags


def gps_to_decimal(coords: Any, ref: Any) -> Optional[float]:
    """
    Converts EXIF degree/minute/second rationals to signed decimal degrees.

    Args:
        coords: Sequence of (degrees, minutes, seconds), rationals or numbers
        ref: Hemisphere reference (N/S/E/W)

    Returns:
        Decimal degrees, negative for S and W, or None if malformed
    """
    if not coords or not ref:
        return None

    try:
        parts = [clean_tag_value(c) for c in coords]
        degrees, minutes, seconds = (float(p) for p in parts[:3])
    except (TypeError, ValueError):
        return None

    decimal = degrees + minutes / 60 + seconds / 3600
    if clean_tag_value(ref).upper() in ("S", "W"):
        decimal = -decimal
    return decimal


def _parse_gps(raw: Dict[int, Any]) -> Dict[str, Any]:
    tags = _named_tags(raw, GPSTAGS, {})
    latitude = gps_to_decimal(raw.get(2), raw.get(1))
    longitude = gps_to_decimal(raw.get(4), raw.get(3))
    if latitude is not None:
        tags["latitude"] = latitude
    if longitude is not None:
        tags["longitude"] = longitude
    return tags


def _local_name(name: str) -> str:
    return name.rsplit("}", 1)[-1].split(":")[-1]


def _walk_xmp(elem: ET.Element, tags: Dict[str, Any]) -> None:
    for key, value in elem.attrib.items():
        name = _local_name(key)
        if name not in XMP_STRUCTURAL:
            tags.setdefault(name, value)

    for child in elem:
        name = _local_name(child.tag)
        items = [
            li.text.strip()
            for container in child if _local_name(container.tag) in XMP_CONTAINERS
            for li in container
            if _local_name(li.tag) == "li" and li.text and li.text.strip()
        ]
        if items:
            tags.setdefault(name, items[0] if len(items) == 1 else items)
        elif len(child) == 0 and child.text and child.text.strip():
            tags.setdefault(name, child.text.strip())
        else:
            _walk_xmp(child, tags)


def parse_xmp_packet(packet: Any) -> Dict[str, Any]:
    """
    Flattens an XMP packet into namespace-stripped tags.

    Element text and rdf:Description attributes both become tags; rdf:Seq,
    rdf:Bag and rdf:Alt containers collapse to their item values.

    Args:
        packet: XMP packet as bytes or str

    Returns:
        Tag dictionary (empty if the XML is malformed)
    """
    if isinstance(packet, bytes):
        packet = packet.decode("utf-8", errors="ignore")
    packet = packet.strip("\x00").strip()

    try:
        root = ET.fromstring(packet)
    except ET.ParseError as e:
        logger.debug(f"XMP packet is not well-formed: {e}")
        return {}

    tags: Dict[str, Any] = {}
    _walk_xmp(root, tags)
    return tags


def _find_xmp_packet(img: Image.Image) -> Optional[Any]:
    for key in XMP_INFO_KEYS:
        if img.info.get(key):
            return img.info[key]

    for segment, content in getattr(img, "applist", []):
        if segment == "APP1" and content.startswith(XMP_APP1_HEADER):
            return content[len(XMP_APP1_HEADER):]

    tag_v2 = getattr(img, "tag_v2", None)
    if tag_v2 is not None and XMP_TIFF_TAG in tag_v2:
        return tag_v2[XMP_TIFF_TAG]

    return None


def _parse_iptc(raw: Dict[Tuple[int, int], Any]) -> Dict[str, Any]:
    tags = {}
    for key, value in raw.items():
        name = IPTC_DATASETS.get(key, f"{key[0]}:{key[1]}")
        tags[name] = clean_tag_value(value)
    return tags


def _parse_icc(profile: bytes) -> Dict[str, Any]:
    tags: Dict[str, Any] = {"ProfileSize": len(profile)}
    # ICC header: CMM at 4, device class at 12, colour space at 16, PCS at 20
    if len(profile) >= 24:
        tags["PreferredCMM"] = clean_tag_value(profile[4:8])
        tags["ProfileClass"] = clean_tag_value(profile[12:16])
        tags["ColorSpaceData"] = clean_tag_value(profile[16:20])
        tags["ProfileConnectionSpace"] = clean_tag_value(profile[20:24])
    return tags


def _parse_jfif(info: Dict[str, Any]) -> Dict[str, Any]:
    tags: Dict[str, Any] = {}
    version = info.get("jfif_version")
    if version:
        tags["JFIFVersion"] = f"{version[0]}.{version[1]:02d}"
    if "jfif_unit" in info:
        tags["ResolutionUnit"] = info["jfif_unit"]
    density = info.get("jfif_density")
    if density:
        tags["XResolution"], tags["YResolution"] = density[0], density[1]
    return tags


# ============================================================
# Extraction
# ============================================================

def extract_metadata(data: bytes) -> MetadataBundle:
    """
    Parses every recognised metadata block out of raw image bytes.

    Individual blocks that are missing or unreadable are left as None.

    Args:
        data: Raw file bytes

    Returns:
        MetadataBundle

    Raises:
        MetadataParseError: The payload is not an image container Pillow knows
    """
    try:
        img = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise MetadataParseError(f"No readable metadata container: {e}") from e

    bundle = MetadataBundle()

    with img:
        try:
            exif = img.getexif()
        except Exception as e:
            logger.warning(f"EXIF block unreadable: {e}")
            exif = Image.Exif()

        ifd0 = _named_tags(dict(exif), TAGS, IFD0_RENAMES, skip=IFD_POINTERS)
        if ifd0:
            bundle.primary_image_directory = MetadataBlock("primary_image_directory", ifd0)

        try:
            exif_ifd = exif.get_ifd(IFD.Exif)
            if exif_ifd:
                bundle.capture_exif = MetadataBlock(
                    "capture_exif",
                    _named_tags(exif_ifd, TAGS, EXIF_RENAMES, skip=IFD_POINTERS)
                )

            gps_ifd = exif.get_ifd(IFD.GPSInfo)
            if gps_ifd:
                bundle.gps = MetadataBlock("gps", _parse_gps(gps_ifd))
        except Exception as e:
            logger.debug(f"EXIF sub-IFD extraction failed: {e}")

        packet = _find_xmp_packet(img)
        if packet:
            bundle.extensible_metadata = MetadataBlock("extensible_metadata", parse_xmp_packet(packet))

        try:
            iptc = IptcImagePlugin.getiptcinfo(img)
            if iptc:
                bundle.press_metadata = MetadataBlock("press_metadata", _parse_iptc(iptc))
        except Exception as e:
            logger.debug(f"IPTC extraction failed: {e}")

        profile = img.info.get("icc_profile")
        if profile:
            bundle.color_profile = MetadataBlock("color_profile", _parse_icc(profile))

        if "jfif" in img.info or "jfif_version" in img.info:
            bundle.jfif = MetadataBlock("jfif", _parse_jfif(img.info))

    logger.debug(f"Metadata blocks found: {bundle.present_blocks()}")
    return bundle
