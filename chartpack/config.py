"""
Process-wide settings, read once at startup.

The Settings object is immutable and handed to the pipeline explicitly;
nothing else reads the environment.
"""

import os
import shlex
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

ALLOWED_EXTENSIONS: Tuple[str, ...] = (".wav", ".mp3", ".m4a", ".flac")
MAX_UPLOAD_BYTES = 100 * 1024 * 1024
DEFAULT_ANALYZER_TIMEOUT = 600.0
DEFAULT_ANALYZER_SCRIPT = os.path.join("scripts", "analyze_audio.py")
OUTPUT_SUFFIX = ".chartpack.json"


@dataclass(frozen=True)
class Settings:
    """
    Configuration for one running service.

    Attributes:
        analyzer_command: Executable plus any leading arguments. The input and
            output paths are appended as the final two positional arguments.
        work_dir: Directory that holds the per-request working files.
        max_upload_bytes: Upload size ceiling, inclusive.
        analyzer_timeout: Seconds to wait for the analyzer before killing it.
            None waits indefinitely.
        allowed_extensions: Lower-case audio extensions accepted on upload.
    """

    analyzer_command: Tuple[str, ...]
    work_dir: Path
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    analyzer_timeout: Optional[float] = DEFAULT_ANALYZER_TIMEOUT
    allowed_extensions: Tuple[str, ...] = ALLOWED_EXTENSIONS

    def __post_init__(self) -> None:
        if not self.analyzer_command:
            raise ValueError("analyzer_command must not be empty")
        if self.max_upload_bytes <= 0:
            raise ValueError(f"max_upload_bytes must be positive, got {self.max_upload_bytes}")
        if self.analyzer_timeout is not None and self.analyzer_timeout <= 0:
            raise ValueError(f"analyzer_timeout must be positive or None, got {self.analyzer_timeout}")
        if not self.allowed_extensions:
            raise ValueError("allowed_extensions must not be empty")
        bad = [ext for ext in self.allowed_extensions if not ext.startswith(".") or ext != ext.lower()]
        if bad:
            raise ValueError(f"allowed_extensions must be lower-case and dot-prefixed, got {bad}")


def _analyzer_command(env: Mapping[str, str]) -> Tuple[str, ...]:
    full = env.get("CHARTPACK_ANALYZER_CMD", "").strip()
    if full:
        return tuple(shlex.split(full))

    binary = env.get("CHARTPACK_ANALYZER_BIN") or env.get("PYTHON_BIN") or "python3"
    script = env.get("CHARTPACK_ANALYZER_SCRIPT", DEFAULT_ANALYZER_SCRIPT)
    if not script:
        return (binary,)
    return (binary, os.path.abspath(script))


def _number(name: str, raw: str, kind):
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _timeout(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return DEFAULT_ANALYZER_TIMEOUT
    raw = raw.strip()
    if not raw:
        return None
    value = _number("CHARTPACK_ANALYZER_TIMEOUT", raw, float)
    return value or None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from CHARTPACK_* variables, falling back to PYTHON_BIN and TMPDIR."""
    if env is None:
        env = os.environ

    work_dir = env.get("CHARTPACK_WORK_DIR") or env.get("TMPDIR") or tempfile.gettempdir()
    max_bytes = env.get("CHARTPACK_MAX_UPLOAD_BYTES")

    return Settings(
        analyzer_command=_analyzer_command(env),
        work_dir=Path(work_dir),
        max_upload_bytes=_number("CHARTPACK_MAX_UPLOAD_BYTES", max_bytes, int) if max_bytes else MAX_UPLOAD_BYTES,
        analyzer_timeout=_timeout(env.get("CHARTPACK_ANALYZER_TIMEOUT")),
    )
