"""Status API schemas (camelCase on the wire)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ServerStatus(CamelModel):
    status: str = "OK"
    current_time: datetime


class DatabaseStatus(CamelModel):
    accessible: bool
    file_size: Optional[int] = None
    file_last_modified: Optional[datetime] = None
    portrait_count: Optional[int] = None


class FetchJobStatusResponse(CamelModel):
    last_run_timestamp: Optional[datetime] = None
    last_run_status: Optional[str] = None
    last_run_error: Optional[str] = None
    highest_id_processed: Optional[int] = None
    unpublished_ids_count: Optional[int] = None


class StatusResponse(CamelModel):
    server: ServerStatus
    database: DatabaseStatus
    fetch_job: FetchJobStatusResponse
