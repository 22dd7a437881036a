"""Status API route.

Reports server time, store accessibility and the last fetch run.
"""

from fastapi import APIRouter

from portraitdex_core.api.deps import GalleryServiceDep, SettingsDep
from portraitdex_core.api.schemas.status import (
    DatabaseStatus,
    FetchJobStatusResponse,
    ServerStatus,
    StatusResponse,
)

router = APIRouter(tags=["status"])


@router.get("/status", response_model=StatusResponse, summary="Application status")
def get_status(service: GalleryServiceDep, settings: SettingsDep):
    """Get store and fetch job status."""
    report = service.get_status(settings.database_url, job_name=settings.fetch_job_name)

    fetch_job = FetchJobStatusResponse()
    if report.fetch_job is not None:
        fetch_job = FetchJobStatusResponse(
            last_run_timestamp=report.fetch_job.last_run_timestamp,
            last_run_status=report.fetch_job.last_run_status,
            last_run_error=report.fetch_job.last_run_error,
            highest_id_processed=report.fetch_job.highest_id_processed,
            unpublished_ids_count=report.fetch_job.unpublished_ids_count,
        )

    return StatusResponse(
        server=ServerStatus(status="OK", current_time=report.current_time),
        database=DatabaseStatus(
            accessible=report.database.accessible,
            file_size=report.database.file_size,
            file_last_modified=report.database.file_last_modified,
            portrait_count=report.database.portrait_count,
        ),
        fetch_job=fetch_job,
    )
