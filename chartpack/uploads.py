"""
Upload checks and file naming.

Rationale:
- Reject bad uploads on name and size alone, before any bytes reach disk.
- Keep working-file names filesystem-safe and unique per request.
"""

import os
import re
import time
import uuid
from typing import Optional

from .config import Settings
from .errors import InputRejected

_UNSAFE_CHARS = re.compile(r"[^\w.\-]+", re.ASCII)
FALLBACK_NAME = "upload.wav"


def _format_size(num_bytes: int) -> str:
    mib = num_bytes / (1024 * 1024)
    return f"{mib:g}MB" if mib >= 1 else f"{num_bytes} bytes"


def validate_upload(filename: str, size: Optional[int], settings: Settings) -> None:
    """
    Check extension and size of an inbound file.

    `size` may be None when the client did not declare a length; the caller
    must re-check once the payload is read.
    """
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in settings.allowed_extensions:
        raise InputRejected(
            f"Invalid file type. Supported formats: {', '.join(settings.allowed_extensions)}"
        )
    if size is not None and size > settings.max_upload_bytes:
        raise InputRejected(
            f"File too large. Maximum size is {_format_size(settings.max_upload_bytes)}."
        )


def sanitize_filename(filename: str) -> str:
    """Replace runs of unsafe characters with `_`; keep only the base name."""
    base = os.path.basename((filename or "").replace("\\", "/"))
    safe = _UNSAFE_CHARS.sub("_", base).strip(".")
    return safe or FALLBACK_NAME


def unique_name(filename: str) -> str:
    """`<epoch-ms>_<token>_<safe name>`; the token keeps same-millisecond uploads apart."""
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}_{sanitize_filename(filename)}"
