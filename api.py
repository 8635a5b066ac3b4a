"""
HTTP trigger for running the job-links analysis and downloading the result.

Run with::

    uvicorn api:app --port 8000
"""

from __future__ import annotations

import io
import logging
import threading
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import StreamingResponse

from analyzer import JobLinkAnalyzer
from config import DEFAULT_CONFIG_PATH, Settings, load_settings
from table_store import MissingColumnError, TableBusyError

LOGGER = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

app = FastAPI(title="Job Link Analyzer")

# One run per process; concurrent runs would race on the same workbook.
_run_lock = threading.Lock()


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return load_settings(DEFAULT_CONFIG_PATH)


def get_settings() -> Settings:
    """Load settings once, mapping configuration errors to HTTP 500."""
    try:
        return _cached_settings()
    except (FileNotFoundError, ValueError) as exc:
        LOGGER.error("Configuration error: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Configuration error: {exc}",
        ) from exc


def build_analyzer(settings: Settings) -> JobLinkAnalyzer:
    return JobLinkAnalyzer(settings)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/companies/{company_id}/job-links/analyze")
def analyze_job_links(
    company_id: str,
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """Analyze the job-links workbook and return it as an XLSX download.

    Args:
        company_id: Company scope the run was requested for.
        settings: Injected application settings.

    Returns:
        The analysed workbook as an attachment.

    Raises:
        HTTPException 404: If the workbook does not exist.
        HTTPException 409: If a run is already in progress or the file is locked.
        HTTPException 422: If the workbook has no ``Link`` column.
    """
    if not _run_lock.acquire(blocking=False):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An analysis run is already in progress.",
        )
    try:
        LOGGER.info("Analysis requested for company %s", company_id)
        path = build_analyzer(settings).run()
        payload = path.read_bytes()
    except FileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except MissingColumnError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except TableBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    finally:
        _run_lock.release()

    return StreamingResponse(
        io.BytesIO(payload),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{path.name}"'},
    )
