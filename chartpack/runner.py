"""
Runner for the external audio analyzer.

Design & Rationale:
- The analyzer is an opaque program: `<command...> <input path> <output path>`.
  It must write one JSON document to the output path and exit 0.
- It runs as an asyncio subprocess so one slow analysis does not stall other
  requests. stdout/stderr are captured and logged; stderr is attached to
  failures.
- The wait is bounded by a configurable timeout. On timeout, or when the
  awaiting request is cancelled, the process is killed and reaped.
- Spawn errors (missing binary, permissions) are AnalyzerUnavailable, a
  non-zero exit is AnalyzerFailure. They are different problems: the first is
  the environment, the second is the input.
"""

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, Optional, Sequence, Tuple

from .config import ALLOWED_EXTENSIONS, OUTPUT_SUFFIX
from .errors import AnalyzerFailure, AnalyzerTimeout, AnalyzerUnavailable, SchemaViolation

logger = logging.getLogger(__name__)

_TAIL_READ_TIMEOUT = 2.0

_AUDIO_EXT = re.compile(
    "(" + "|".join(re.escape(ext) for ext in ALLOWED_EXTENSIONS) + r")$",
    re.IGNORECASE,
)


def output_path_for(input_path: str) -> str:
    """Strip a recognized audio extension and append the chart pack suffix."""
    return _AUDIO_EXT.sub("", str(input_path)) + OUTPUT_SUFFIX


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def _log_stream(name: str, text: str, level: int) -> None:
    for line in text.splitlines():
        if line.strip():
            logger.log(level, "[analyzer %s] %s", name, line.rstrip())


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


async def _drain(stream: Optional[asyncio.StreamReader], sink: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        sink.extend(chunk)


async def _communicate(
    proc: asyncio.subprocess.Process, timeout: Optional[float]
) -> Tuple[bytes, bytes]:
    # Streams are collected into our own buffers so that output written before
    # a timeout is still available after the process is killed.
    out, err = bytearray(), bytearray()
    try:
        await asyncio.wait_for(
            asyncio.gather(_drain(proc.stdout, out), _drain(proc.stderr, err), proc.wait()),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.error("Analyzer exceeded %ss, killing pid %s", timeout, proc.pid)
        await _kill(proc)
        try:
            await asyncio.wait_for(_drain(proc.stderr, err), timeout=_TAIL_READ_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Analyzer stderr still open after kill; reporting what was read")
        stderr_text = _decode(bytes(err))
        _log_stream("stderr", stderr_text, logging.WARNING)
        raise AnalyzerTimeout(
            f"Analyzer timed out after {timeout:g}s. Stderr: {stderr_text.strip()}",
            returncode=proc.returncode,
            stderr=stderr_text,
        )
    except asyncio.CancelledError:
        logger.warning("Request cancelled, killing analyzer pid %s", proc.pid)
        await asyncio.shield(_kill(proc))
        raise
    return bytes(out), bytes(err)


async def run_analyzer(
    command: Sequence[str],
    input_path: str,
    timeout: Optional[float] = None,
) -> str:
    """
    Run the analyzer on `input_path` and return the output path it wrote.

    Raises AnalyzerUnavailable if the process cannot be started,
    AnalyzerTimeout if it outlives `timeout`, and AnalyzerFailure on a
    non-zero exit or when it exits 0 without writing the output file.
    """
    out_path = output_path_for(input_path)
    argv = [*command, str(input_path), out_path]
    logger.info("Starting analyzer: %s", " ".join(argv))

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("Analyzer spawn failed: %s", e)
        raise AnalyzerUnavailable(f"Analyzer could not be started ({command[0]}): {e}") from e

    stdout, stderr = await _communicate(proc, timeout)
    stdout_text, stderr_text = _decode(stdout), _decode(stderr)
    _log_stream("stdout", stdout_text, logging.INFO)
    _log_stream("stderr", stderr_text, logging.WARNING)
    logger.info("Analyzer exited with code %s", proc.returncode)

    if proc.returncode != 0:
        raise AnalyzerFailure(
            f"Analyzer failed with code {proc.returncode}. Stderr: {stderr_text.strip()}",
            returncode=proc.returncode,
            stderr=stderr_text,
        )

    if not os.path.isfile(out_path):
        raise AnalyzerFailure(
            f"Analyzer exited successfully but wrote no output to {os.path.basename(out_path)}",
            returncode=proc.returncode,
            stderr=stderr_text,
        )

    return out_path


def load_result(path: str) -> Dict[str, Any]:
    """Read the analyzer's JSON document. It must be a JSON object."""
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SchemaViolation(f"Analyzer output is not valid JSON: {e}", field="$") from e
    if not isinstance(data, dict):
        raise SchemaViolation(
            f"Analyzer output must be a JSON object, got {type(data).__name__}", field="$"
        )
    return data
