"""
Pytest Configuration and Fixtures for MetaScan Tests
====================================================
"""

import io
import os
import sys

import pytest
from PIL import Image
from PIL.ExifTags import IFD

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

# Set up test environment variables
os.environ.setdefault('SERVICE_NAME', 'metadata-forensics-unit')
os.environ.setdefault('FETCH_TIMEOUT_SECONDS', '5')


def build_jpeg(ifd0=None, exif_ifd=None, gps_ifd=None, icc_profile=None, size=(16, 16)) -> bytes:
    """Encodes a small JPEG carrying the given EXIF tags (numeric tag ids)."""
    exif = Image.Exif()
    for tag, value in (ifd0 or {}).items():
        exif[tag] = value
    if exif_ifd:
        exif[IFD.Exif] = exif_ifd
    if gps_ifd:
        exif[IFD.GPSInfo] = gps_ifd

    params = {"exif": exif.tobytes()} if len(exif) else {}
    if icc_profile:
        params["icc_profile"] = icc_profile

    buffer = io.BytesIO()
    Image.new("RGB", size, "white").save(buffer, "JPEG", **params)
    return buffer.getvalue()


def build_png(pnginfo=None, size=(16, 16)) -> bytes:
    """Encodes a small PNG, optionally with text chunks."""
    buffer = io.BytesIO()
    if pnginfo is not None:
        Image.new("RGB", size, "white").save(buffer, "PNG", pnginfo=pnginfo)
    else:
        Image.new("RGB", size, "white").save(buffer, "PNG")
    return buffer.getvalue()


@pytest.fixture
def plain_png():
    """PNG with no metadata at all."""
    return build_png()


@pytest.fixture
def plain_jpeg():
    """JPEG with only the default JFIF segment."""
    return build_jpeg()


@pytest.fixture
def camera_jpeg():
    """JPEG with camera IFD0 tags and an edited-in-Photoshop software tag."""
    return build_jpeg(ifd0={
        0x010F: "Canon",                       # Make
        0x0110: "Canon EOS R5",                # Model
        0x0131: "Adobe Photoshop 2023",        # Software
        0x0132: "2023:06:01 10:00:00",         # DateTime (ModifyDate)
    })


@pytest.fixture
def xmp_packet():
    """XMP packet carrying a CreatorTool both as attribute-style and history."""
    return (
        '<?xpacket begin="﻿" id="W5M0MpCehiHzreSzNTczkc9d"?>'
        '<x:xmpmeta xmlns:x="adobe:ns:meta/">'
        '<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">'
        '<rdf:Description rdf:about="" '
        'xmlns:xmp="http://ns.adobe.com/xap/1.0/" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmp:CreatorTool="GIMP 2.10">'
        '<xmp:ModifyDate>2023-06-01T10:00:00</xmp:ModifyDate>'
        '<dc:creator><rdf:Seq><rdf:li>Jane Analyst</rdf:li></rdf:Seq></dc:creator>'
        '<dc:subject><rdf:Bag><rdf:li>harbor</rdf:li><rdf:li>night</rdf:li></rdf:Bag></dc:subject>'
        '</rdf:Description>'
        '</rdf:RDF>'
        '</x:xmpmeta>'
        '<?xpacket end="w"?>'
    )


# Test markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )
