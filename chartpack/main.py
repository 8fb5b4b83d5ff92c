"""
FastAPI entrypoint with a single /generate route.

- Accepts a multipart form with one file field, `audio`
- Hands the upload to the pipeline and answers with its envelope:
  400 for rejected input, 500 for analyzer/schema failures, 200 with the chart
"""

import os
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from fastapi import Depends, FastAPI, UploadFile, File
from fastapi.responses import JSONResponse
from typing import Dict, Optional

from .config import Settings, load_settings
from .pipeline import UploadRequest, generate_chart
from .schemas import ChartResponse

MISSING_FIELD_ERROR = "Missing form field 'audio' (file)."


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings are read once per process and shared read-only by all requests."""
    settings = load_settings()
    logger.info(
        "Analyzer command: %s | work dir: %s | timeout: %s",
        " ".join(settings.analyzer_command),
        settings.work_dir,
        settings.analyzer_timeout,
    )
    return settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Read configuration before serving; a bad environment stops startup.
    app.dependency_overrides.get(get_settings, get_settings)()
    yield


app = FastAPI(title="Chart Pack Generator", lifespan=lifespan)


def _envelope(status_code: int, body: ChartResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/generate", response_model=ChartResponse, response_model_exclude_none=True)
async def generate_endpoint(
    audio: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
):
    # 1) The form must carry the file field
    if audio is None:
        return _envelope(400, ChartResponse(ok=False, error=MISSING_FIELD_ERROR))

    # 2) Run the pipeline; it always returns an envelope
    upload = UploadRequest(
        filename=audio.filename or "",
        declared_size=audio.size,
        read=audio.read,
    )
    status_code, body = await generate_chart(upload, settings)
    return _envelope(status_code, body)
