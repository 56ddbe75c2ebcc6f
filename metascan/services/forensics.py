"""
Forensic Analyzer for MetaScan
==============================
Turns a declared locator, a detected binary signature and parsed metadata
blocks into a single tamper-assessment report.

Checks:
- File integrity: declared extension vs. magic-byte signature (spoofing)
- Device fingerprint: make/model/lens/serial and software provenance
- Provenance: capture vs. modify timeline
- Location intelligence: GPS coordinates and a maps link
- Raw tag presence: XMP / IPTC presence flags only

Pure and deterministic apart from the report timestamp. Every input is
optional and every output field has a fallback, so analysis never fails.

Editing detection is a name-fingerprint heuristic: it recognises a fixed
set of editor names in the software tag and misses any other tool.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from dateutil import parser as date_parser

from metascan.config import SERVICE_NAME
from metascan.services.metadata import MetadataBundle
from metascan.services.signature import SignatureResult
from metascan.utils import declared_extension, format_coordinate

logger = logging.getLogger(__name__)


# ============================================================
# Constants
# ============================================================

UNKNOWN = "Unknown"
UNKNOWN_TYPE = "unknown"
MAKE_STRIPPED = "Unknown (Metadata Stripped)"

EDITOR_FINGERPRINTS = ("Photoshop", "GIMP", "Lightroom")

TIMELINE_CONSISTENT = "Consistent"
TIMELINE_ALTERED = "Altered after creation"

XMP_PRESENT = "Present (XML data available)"
IPTC_PRESENT = "Present (Press metadata available)"
MISSING = "Missing"

MAPS_URL_TEMPLATE = "https://www.google.com/maps?q={latitude},{longitude}"
MAPS_URL_LATITUDE_ONLY = "https://www.google.com/maps?q={latitude}"

# EXIF stores dates as "YYYY:MM:DD HH:MM:SS", which general parsers misread
EXIF_DATE_FORMATS = ("%Y:%m:%d %H:%M:%S", "%Y:%m:%d %H:%M:%S%z", "%Y:%m:%d")

PRIMARY = "primary_image_directory"
CAPTURE = "capture_exif"
GPS = "gps"
XMP = "extensible_metadata"
IPTC = "press_metadata"


# ============================================================
# Rule Chains
# ============================================================

# A rule is (predicate, value); value may be a constant or a callable of the subject
Rule = Tuple[Callable[[Any], bool], Any]


def evaluate_rules(rules: Sequence[Rule], subject: Any, default: Any) -> Any:
    """
    Evaluates (predicate, value) rules top to bottom.

    Args:
        rules: Ordered rules
        subject: Value every predicate and value callable receives
        default: Result when no predicate holds

    Returns:
        The value of the first matching rule, else default
    """
    for predicate, value in rules:
        if predicate(subject):
            return value(subject) if callable(value) else value
    return default


def tag_present(block: str, tag: str) -> Callable[[MetadataBundle], bool]:
    return lambda bundle: bundle.tag(block, tag) is not None


def tag_value(block: str, tag: str) -> Callable[[MetadataBundle], Any]:
    return lambda bundle: bundle.tag(block, tag)


def tag_rule(block: str, tag: str) -> Rule:
    return (tag_present(block, tag), tag_value(block, tag))


SOFTWARE_RULES: List[Rule] = [
    tag_rule(PRIMARY, "Software"),
    tag_rule(PRIMARY, "ProcessingSoftware"),
    tag_rule(XMP, "CreatorTool"),
]

EDITOR_RULES: List[Rule] = [
    ((lambda software, name=name: name in software), name)
    for name in EDITOR_FINGERPRINTS
]


# ============================================================
# Data Models
# ============================================================

def _verbatim(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass
class FileIntegrity:
    """Declared vs. detected binary type."""
    declared_type: str
    actual_type: str = UNKNOWN_TYPE
    mime: str = UNKNOWN_TYPE
    is_extension_spoofed: bool = False
    file_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "declaredType": self.declared_type,
            "actualType": self.actual_type,
            "mime": self.mime,
            "isExtensionSpoofed": self.is_extension_spoofed,
            "fileSize": self.file_size
        }


@dataclass
class DeviceFingerprint:
    """Capture device and software tags."""
    make: Any = MAKE_STRIPPED
    model: Any = UNKNOWN
    lens: Any = UNKNOWN
    serial_number: Any = UNKNOWN
    software: str = UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "make": self.make,
            "model": self.model,
            "lens": self.lens,
            "serialNumber": self.serial_number,
            "software": self.software
        }


@dataclass
class Provenance:
    """Capture, digitize and modify dates with the timeline verdict."""
    created: Any = UNKNOWN
    digitized: Any = UNKNOWN
    modified: Any = UNKNOWN
    timeline_analysis: str = TIMELINE_CONSISTENT
    is_edited: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": _verbatim(self.created),
            "digitized": _verbatim(self.digitized),
            "modified": _verbatim(self.modified),
            "timelineAnalysis": self.timeline_analysis,
            "isEdited": self.is_edited
        }


@dataclass
class LocationIntel:
    """GPS coordinates and a link for the analyst."""
    has_gps: bool = False
    latitude: Optional[Any] = None
    longitude: Optional[Any] = None
    maps_link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasGPS": self.has_gps,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "mapsLink": self.maps_link
        }


@dataclass
class RawTagPresence:
    """Presence flags for bulky descriptive blocks."""
    xmp: str = MISSING
    iptc: str = MISSING

    def to_dict(self) -> Dict[str, Any]:
        return {"xmp": self.xmp, "iptc": self.iptc}


@dataclass
class ForensicReport:
    """Complete forensic analysis report."""
    file_integrity: FileIntegrity
    device_fingerprint: DeviceFingerprint = field(default_factory=DeviceFingerprint)
    provenance: Provenance = field(default_factory=Provenance)
    location_intel: LocationIntel = field(default_factory=LocationIntel)
    raw_tags: RawTagPresence = field(default_factory=RawTagPresence)
    service: str = SERVICE_NAME
    status: str = "complete"
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "status": self.status,
            "timestamp": self.timestamp,
            "fileIntegrity": self.file_integrity.to_dict(),
            "deviceFingerprint": self.device_fingerprint.to_dict(),
            "provenance": self.provenance.to_dict(),
            "locationIntel": self.location_intel.to_dict(),
            "rawTags": self.raw_tags.to_dict()
        }


# ============================================================
# Sub-rules
# ============================================================

def check_integrity(
    locator: str,
    signature: Optional[SignatureResult],
    file_size: int = 0
) -> FileIntegrity:
    """
    Compares the locator's claimed extension with the detected signature.

    Spoofing is only asserted when a signature was detected and the full
    lowercased locator does not end with "." + detected extension.
    """
    integrity = FileIntegrity(declared_type=declared_extension(locator), file_size=file_size)

    if signature is not None:
        integrity.actual_type = signature.detected_extension or UNKNOWN_TYPE
        integrity.mime = signature.mime or UNKNOWN_TYPE
        integrity.is_extension_spoofed = not locator.lower().endswith(
            "." + signature.detected_extension.lower()
        )

    return integrity


def resolve_software(metadata: MetadataBundle) -> str:
    software = evaluate_rules(SOFTWARE_RULES, metadata, UNKNOWN)
    return software if isinstance(software, str) else str(software)


def matched_editor(software: str) -> Optional[str]:
    """Returns the first known editor name found in the software tag."""
    if software == UNKNOWN:
        return None
    return evaluate_rules(EDITOR_RULES, software, None)


def fingerprint_device(metadata: MetadataBundle) -> DeviceFingerprint:
    return DeviceFingerprint(
        make=metadata.tag(PRIMARY, "Make") or MAKE_STRIPPED,
        model=metadata.tag(PRIMARY, "Model") or UNKNOWN,
        lens=metadata.tag(CAPTURE, "LensModel") or UNKNOWN,
        serial_number=metadata.tag(CAPTURE, "BodySerialNumber") or UNKNOWN,
        software=resolve_software(metadata)
    )


def to_instant(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """
    Normalizes a date-like tag value to a timezone-aware UTC instant.

    Accepts datetime/date objects, EXIF date strings and ISO-8601 strings.
    Partial values are completed from fixed defaults, never from the
    current date, and time-only or free-text values are rejected. Naive
    values are taken as UTC.

    Returns:
        Aware datetime, or None if the value cannot be interpreted
    """
    if isinstance(value, datetime):
        instant = value
    elif isinstance(value, date):
        instant = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        instant = _parse_date_string(value.strip())
        if instant is None:
            return None
    else:
        return None

    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    try:
        return instant.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None


def _parse_date_string(text: str) -> Optional[datetime]:
    for fmt in EXIF_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    try:
        return date_parser.isoparse(text)
    except (ValueError, OverflowError, TypeError) as e:
        logger.debug(f"Unparseable date {text!r}: {e}")
        return None


def modified_after_original(dates: Tuple[Any, Any]) -> bool:
    original, modified = (to_instant(d) for d in dates)
    if original is None or modified is None:
        return False
    return modified > original


TIMELINE_RULES: List[Rule] = [
    (modified_after_original, TIMELINE_ALTERED),
]


def analyze_provenance(metadata: MetadataBundle, software: str) -> Provenance:
    original_date = metadata.tag(CAPTURE, "DateTimeOriginal")
    digitize_date = metadata.tag(CAPTURE, "CreateDate")
    modify_date = metadata.tag(PRIMARY, "ModifyDate")

    return Provenance(
        created=original_date or UNKNOWN,
        digitized=digitize_date or UNKNOWN,
        modified=modify_date or UNKNOWN,
        timeline_analysis=evaluate_rules(
            TIMELINE_RULES, (original_date, modify_date), TIMELINE_CONSISTENT
        ),
        is_edited=matched_editor(software) is not None
    )


def locate(metadata: MetadataBundle) -> LocationIntel:
    """
    Builds location intel from the GPS block.

    A fix is present when a latitude is. The maps link embeds both
    coordinates, and falls back to the latitude alone when the longitude
    is missing so that every fix carries a link.
    """
    latitude = metadata.tag(GPS, "latitude")
    longitude = metadata.tag(GPS, "longitude")

    if latitude is None:
        return LocationIntel(longitude=longitude)

    if longitude is None:
        maps_link = MAPS_URL_LATITUDE_ONLY.format(latitude=format_coordinate(latitude))
    else:
        maps_link = MAPS_URL_TEMPLATE.format(
            latitude=format_coordinate(latitude),
            longitude=format_coordinate(longitude)
        )

    return LocationIntel(
        has_gps=True,
        latitude=latitude,
        longitude=longitude,
        maps_link=maps_link
    )


def raw_tag_presence(metadata: MetadataBundle) -> RawTagPresence:
    return RawTagPresence(
        xmp=XMP_PRESENT if metadata.has_block(XMP) else MISSING,
        iptc=IPTC_PRESENT if metadata.has_block(IPTC) else MISSING
    )


# ============================================================
# Entry Point
# ============================================================

def analyze(
    locator: str,
    signature: Optional[SignatureResult] = None,
    metadata: Optional[MetadataBundle] = None,
    file_size: int = 0
) -> ForensicReport:
    """
    Builds the forensic report for one media file.

    Args:
        locator: URL or filename the file was declared under
        signature: Magic-byte detection result, None if unrecognized
        metadata: Parsed metadata blocks, None if nothing was found
        file_size: Raw byte length of the payload

    Returns:
        ForensicReport with every field populated or defaulted
    """
    if metadata is None:
        metadata = MetadataBundle.empty()

    device = fingerprint_device(metadata)

    report = ForensicReport(
        file_integrity=check_integrity(locator, signature, file_size),
        device_fingerprint=device,
        provenance=analyze_provenance(metadata, device.software),
        location_intel=locate(metadata),
        raw_tags=raw_tag_presence(metadata)
    )

    if report.file_integrity.is_extension_spoofed:
        logger.warning(
            f"Extension spoofing: {locator} declares "
            f"{report.file_integrity.declared_type}, bytes are {report.file_integrity.actual_type}"
        )

    return report
