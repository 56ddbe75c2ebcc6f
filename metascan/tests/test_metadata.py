"""
Test Suite for Metadata Extraction and Signature Detection
==========================================================
Tests run against small images encoded in memory with Pillow.
"""

from fractions import Fraction

import pytest
from PIL import PngImagePlugin

from conftest import build_jpeg, build_png
from metascan.services.metadata import (
    MetadataBlock, MetadataBundle, MetadataParseError,
    extract_metadata, gps_to_decimal, parse_xmp_packet
)
from metascan.services.signature import SignatureResult, detect_signature


ICC_HEADER = (
    b"\x00\x00\x00\x80" + b"lcms" + b"\x02\x10\x00\x00" + b"mntr" + b"RGB " + b"XYZ "
    + b"\x00" * 104
)


class TestSignatureDetection:
    """Tests for magic-byte detection."""

    def test_png_detected(self, plain_png):
        assert detect_signature(plain_png) == SignatureResult("png", "image/png")

    def test_jpeg_detected(self, plain_jpeg):
        signature = detect_signature(plain_jpeg)

        assert signature.detected_extension == "jpg"
        assert signature.mime == "image/jpeg"

    def test_unknown_bytes(self):
        assert detect_signature(b"just some plain text, no magic here") is None

    def test_empty_payload(self):
        assert detect_signature(b"") is None


class TestMetadataBundle:
    """Tests for block / tag absence semantics."""

    def test_absent_block_and_absent_tag_both_none(self):
        metadata = MetadataBundle(gps=MetadataBlock("gps", {"GPSAltitude": 3.0}))

        assert metadata.tag("gps", "latitude") is None
        assert metadata.tag("primary_image_directory", "Make") is None
        assert metadata.has_block("gps") is True
        assert metadata.has_block("primary_image_directory") is False

    def test_empty_values_treated_as_absent(self):
        block = MetadataBlock("primary_image_directory", {"Make": "", "Model": [], "Software": "GIMP"})

        assert block.get("Make") is None
        assert block.get("Model") is None
        assert "Software" in block
        assert "Make" not in block

    def test_empty_bundle(self):
        metadata = MetadataBundle.empty()

        assert metadata.is_empty()
        assert metadata.present_blocks() == []


class TestExtraction:
    """Tests for Pillow-backed block extraction."""

    def test_non_image_raises(self):
        with pytest.raises(MetadataParseError):
            extract_metadata(b"%PDF-1.4 not an image")

    def test_plain_png_has_no_blocks(self, plain_png):
        assert extract_metadata(plain_png).is_empty()

    def test_primary_directory_tags(self, camera_jpeg):
        metadata = extract_metadata(camera_jpeg)

        assert metadata.tag("primary_image_directory", "Make") == "Canon"
        assert metadata.tag("primary_image_directory", "Model") == "Canon EOS R5"
        assert metadata.tag("primary_image_directory", "Software") == "Adobe Photoshop 2023"
        assert metadata.tag("primary_image_directory", "ModifyDate") == "2023:06:01 10:00:00"
        assert metadata.tag("primary_image_directory", "DateTime") is None

    def test_capture_exif_tags(self):
        data = build_jpeg(
            ifd0={0x010F: "Nikon"},
            exif_ifd={
                0x9003: "2023:01:01 10:00:00",   # DateTimeOriginal
                0x9004: "2023:01:01 10:00:05",   # DateTimeDigitized
                0xA434: "NIKKOR Z 50mm f/1.8 S",  # LensModel
                0xA431: "3012345",               # BodySerialNumber
            }
        )
        metadata = extract_metadata(data)

        assert metadata.tag("capture_exif", "DateTimeOriginal") == "2023:01:01 10:00:00"
        assert metadata.tag("capture_exif", "CreateDate") == "2023:01:01 10:00:05"
        assert metadata.tag("capture_exif", "LensModel") == "NIKKOR Z 50mm f/1.8 S"
        assert metadata.tag("capture_exif", "BodySerialNumber") == "3012345"

    def test_gps_decimal_coordinates(self):
        data = build_jpeg(
            ifd0={0x010F: "Apple"},
            gps_ifd={
                1: "N", 2: (40.0, 42.0, 0.0),
                3: "W", 4: (74.0, 0.0, 0.0),
            }
        )
        metadata = extract_metadata(data)

        assert metadata.tag("gps", "latitude") == pytest.approx(40.7)
        assert metadata.tag("gps", "longitude") == pytest.approx(-74.0)
        assert metadata.tag("gps", "GPSLatitudeRef") == "N"

    def test_xmp_from_png(self, xmp_packet):
        info = PngImagePlugin.PngInfo()
        info.add_itxt("XML:com.adobe.xmp", xmp_packet)
        metadata = extract_metadata(build_png(pnginfo=info))

        assert metadata.has_block("extensible_metadata")
        assert metadata.tag("extensible_metadata", "CreatorTool") == "GIMP 2.10"

    def test_icc_profile_header(self):
        metadata = extract_metadata(build_jpeg(icc_profile=ICC_HEADER))

        assert metadata.tag("color_profile", "ProfileSize") == len(ICC_HEADER)
        assert metadata.tag("color_profile", "ProfileClass") == "mntr"
        assert metadata.tag("color_profile", "ColorSpaceData") == "RGB"

    def test_jfif_segment(self, plain_jpeg):
        metadata = extract_metadata(plain_jpeg)

        assert metadata.has_block("jfif")
        assert metadata.tag("jfif", "JFIFVersion").startswith("1.")
        assert metadata.has_block("primary_image_directory") is False
        assert metadata.has_block("press_metadata") is False


class TestXmpParsing:
    """Tests for XMP packet flattening."""

    def test_attributes_elements_and_containers(self, xmp_packet):
        tags = parse_xmp_packet(xmp_packet)

        assert tags["CreatorTool"] == "GIMP 2.10"
        assert tags["ModifyDate"] == "2023-06-01T10:00:00"
        assert tags["creator"] == "Jane Analyst"
        assert tags["subject"] == ["harbor", "night"]
        assert "about" not in tags

    def test_bytes_packet(self, xmp_packet):
        tags = parse_xmp_packet(xmp_packet.encode("utf-8") + b"\x00\x00")
        assert tags["CreatorTool"] == "GIMP 2.10"

    def test_malformed_packet(self):
        assert parse_xmp_packet("<x:xmpmeta><unclosed>") == {}


class TestGpsConversion:
    """Tests for DMS to decimal conversion."""

    def test_north_east_positive(self):
        assert gps_to_decimal((Fraction(48), Fraction(51), Fraction(30)), "N") == pytest.approx(48.858333, rel=1e-6)

    def test_south_west_negative(self):
        assert gps_to_decimal((33.0, 52.0, 0.0), "S") == pytest.approx(-33.866667, rel=1e-6)
        assert gps_to_decimal((151.0, 12.0, 0.0), "W") == pytest.approx(-151.2)

    def test_missing_parts(self):
        assert gps_to_decimal(None, "N") is None
        assert gps_to_decimal((1.0, 2.0, 3.0), None) is None
        assert gps_to_decimal(("x", "y", "z"), "N") is None
