"""
Configuration for MetaScan
==========================
Environment-driven settings. The .env file is loaded before any value is read
so that os.getenv() picks up .env values in every module.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Find .env file relative to this file (handles both direct and package runs)
_env_file = Path(__file__).parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    # Also try project root
    _root_env = Path(__file__).parent.parent / ".env"
    if _root_env.exists():
        load_dotenv(_root_env)


SERVICE_NAME = os.getenv("SERVICE_NAME", "metadata-forensics-unit")
SERVICE_VERSION = "1.0.0"

# Single fetch attempt, bounded in time and size
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "15"))
MAX_MEDIA_BYTES = int(os.getenv("MAX_MEDIA_BYTES", str(50 * 1024 * 1024)))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def get_cors_origins() -> List[str]:
    """Returns the allowed CORS origins from CORS_ORIGINS (comma separated)."""
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
