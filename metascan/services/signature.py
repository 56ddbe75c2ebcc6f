"""
Signature Detector for MetaScan
===============================
Identifies a file's true format from its magic bytes, never from its name.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import filetype

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureResult:
    """Best-guess binary type of a payload."""
    detected_extension: str
    mime: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ext": self.detected_extension,
            "mime": self.mime
        }


def detect_signature(data: bytes) -> Optional[SignatureResult]:
    """
    Matches the leading bytes of a payload against known signatures.

    Args:
        data: Raw file bytes

    Returns:
        SignatureResult, or None when the byte pattern is unrecognized
    """
    if not data:
        return None

    kind = filetype.guess(data)
    if kind is None:
        logger.debug("No known signature matched payload")
        return None

    return SignatureResult(detected_extension=kind.extension, mime=kind.mime)
