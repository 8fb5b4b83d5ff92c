"""
Core orchestration / pipeline.

Flow (one request):
1. Received      - filename, declared size, payload reader
2. Validated     - extension and size checked, nothing on disk yet
3. Persisted     - payload written atomically to a unique working file
4. Analyzing     - external analyzer run as a subprocess
5. Normalizing   - raw analyzer JSON rewritten into the chart pack shape
6. SchemaChecked - chart pack contract asserted
7. Completed     - response built

Any step may fail; the request then goes straight to Failed and an error
envelope is returned. Working files are released before the response leaves
this module, whatever happened. Nothing is retried.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple

from .config import Settings
from .errors import ChartPackError
from .normalizer import normalize_chart
from .runner import load_result, run_analyzer
from .schemas import ChartResponse, validate_chart
from .uploads import validate_upload
from .workspace import request_workspace

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    ANALYZING = "analyzing"
    NORMALIZING = "normalizing"
    SCHEMA_CHECKED = "schema-checked"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class UploadRequest:
    """One inbound file. `read` is only awaited once the name and size pass."""

    filename: str
    declared_size: Optional[int]
    read: Callable[[], Awaitable[bytes]]


class _Tracker:
    def __init__(self, filename: str):
        self.filename = filename
        self.stage = Stage.RECEIVED

    def advance(self, stage: Stage) -> None:
        logger.debug("[%s] %s -> %s", self.filename, self.stage.value, stage.value)
        self.stage = stage


def _failure(err: ChartPackError) -> Tuple[int, ChartResponse]:
    return err.status_code, ChartResponse(ok=False, error=err.message)


async def generate_chart(upload: UploadRequest, settings: Settings) -> Tuple[int, ChartResponse]:
    """
    Run one upload through the whole pipeline.

    Returns (HTTP status, response envelope). Never raises for expected
    failures; unexpected exceptions are logged and reported as 500.
    """
    tracker = _Tracker(upload.filename)
    logger.info("Received file: %s (%s bytes)", upload.filename, upload.declared_size)

    try:
        validate_upload(upload.filename, upload.declared_size, settings)
        payload = await upload.read()
        # declared length may be missing or wrong
        validate_upload(upload.filename, len(payload), settings)
        tracker.advance(Stage.VALIDATED)
    except ChartPackError as e:
        tracker.advance(Stage.FAILED)
        logger.info("Upload rejected: %s", e.message)
        return _failure(e)
    except Exception as e:
        tracker.advance(Stage.FAILED)
        logger.exception("Could not read upload %s", upload.filename)
        return 500, ChartResponse(ok=False, error=f"Could not read upload: {e}")

    try:
        with request_workspace(settings.work_dir, upload.filename) as ws:
            in_path = ws.write_input(payload)
            del payload
            tracker.advance(Stage.PERSISTED)

            tracker.advance(Stage.ANALYZING)
            out_path = await run_analyzer(
                settings.analyzer_command,
                str(in_path),
                timeout=settings.analyzer_timeout,
            )
            ws.mark_output_written()
            logger.info("Reading chart from: %s", out_path)
            raw = load_result(out_path)

            tracker.advance(Stage.NORMALIZING)
            chart = normalize_chart(raw)

            chart = validate_chart(chart)
            tracker.advance(Stage.SCHEMA_CHECKED)
    except ChartPackError as e:
        logger.error("Chart generation failed during %s: %s", tracker.stage.value, e.message)
        tracker.advance(Stage.FAILED)
        return _failure(e)
    except Exception as e:
        logger.exception("Unexpected error during %s", tracker.stage.value)
        tracker.advance(Stage.FAILED)
        return 500, ChartResponse(ok=False, error=str(e) or type(e).__name__)

    tracker.advance(Stage.COMPLETED)
    return 200, ChartResponse(ok=True, chart=chart)
