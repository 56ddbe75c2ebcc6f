"""
MetaScan Media Forensics API
============================
FastAPI service that fetches a remote media file and reports on its integrity.

Pipeline:
- Fetch the file bytes (single attempt, bounded)
- Detect the true binary type from magic bytes
- Extract EXIF / GPS / XMP / IPTC / ICC / JFIF metadata
- Apply forensic heuristics (extension spoofing, editing software, timeline)

Version: 1.0.0
"""

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from metascan.config import (
    LOG_LEVEL, SERVICE_NAME, SERVICE_VERSION, get_cors_origins
)
from metascan.services.fetcher import FetchError, fetch_media
from metascan.services.forensics import ForensicReport, analyze
from metascan.services.metadata import (
    MetadataBundle, MetadataParseError, extract_metadata
)
from metascan.services.signature import detect_signature
from metascan.utils import is_fetchable_locator


# Setup logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


# ============================================================
# Application Setup
# ============================================================

app = FastAPI(
    title="MetaScan Media Forensics",
    description="Binary type verification, metadata extraction and tamper heuristics for remote media",
    version=SERVICE_VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["*"],
)


# ============================================================
# Pydantic Models
# ============================================================

class AnalyzeRequest(BaseModel):
    """Request model for media analysis."""
    mediaUrl: Optional[str] = None


# ============================================================
# Error Responses
# ============================================================

def error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    """Builds the {error, details?} failure body."""
    content = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(400, "Invalid request body")


# ============================================================
# Pipeline
# ============================================================

def load_metadata(data: bytes) -> MetadataBundle:
    """Extracts metadata, degrading to an empty bundle when none is readable."""
    try:
        return extract_metadata(data)
    except MetadataParseError as e:
        logger.warning(f"No standard metadata found (common in social media strips): {e}")
        return MetadataBundle.empty()


async def run_analysis(media_url: str) -> ForensicReport:
    """
    Runs the full forensic pipeline for one URL.

    Signature detection and metadata extraction both need the complete
    payload but not each other, so they run concurrently once it arrives.

    Raises:
        FetchError: The media could not be retrieved
    """
    data = await fetch_media(media_url)

    signature, metadata = await asyncio.gather(
        asyncio.to_thread(detect_signature, data),
        asyncio.to_thread(load_metadata, data)
    )

    return analyze(media_url, signature, metadata, file_size=len(data))


# ============================================================
# Routes
# ============================================================

@app.options("/api/analyze")
async def analyze_preflight():
    """Preflight no-op."""
    return Response(status_code=200)


@app.post("/api/analyze")
async def analyze_media(data: Optional[AnalyzeRequest] = None):
    """
    Fetches a media file and returns its forensic report.

    - fileIntegrity: declared vs. detected type, spoofing flag
    - deviceFingerprint: make, model, lens, serial, software
    - provenance: capture/digitize/modify dates and timeline verdict
    - locationIntel: GPS coordinates and maps link
    - rawTags: XMP / IPTC presence
    """
    media_url = data.mediaUrl if data else None
    if not media_url:
        return error_response(400, "Missing mediaUrl")
    if not is_fetchable_locator(media_url):
        return error_response(400, "Invalid mediaUrl", "mediaUrl must be an absolute http(s) URL")

    logger.info(f"[MetadataScan] Extracting intel from: {media_url}")

    try:
        report = await run_analysis(media_url)
    except FetchError as e:
        logger.error(f"[Metadata Failure] {e}")
        return error_response(500, "Metadata extraction failed", str(e))
    except Exception as e:
        logger.error(f"[Metadata Failure] {e}", exc_info=True)
        return error_response(500, "Metadata extraction failed", str(e))

    return report.to_dict()


# ============================================================
# Health Check
# ============================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION
    }
