from fastapi import APIRouter, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from config import config
from models.reports import (
    GenerateReportRequest,
    GenerateReportResponse,
    GetReportDataResponse,
    GetReportResponse,
    ListReportsResponse,
    ReportJobParameters,
    ReportStatus,
    UpdateReportStatusRequest,
)
from services import experiments, report_jobs
from services.cache import CacheClient
from services.errors import ExperimentNotFoundError, ReportNotFoundError, ReportNotReadyError
from services.storage import BlobStore
from api.depends import CLIENT_AUTH, DB_DEPENDENCY, CACHE_CLIENT, BLOB_STORE

# Import the Celery task
from celery_tasks.report_tasks import generate_report_task
import logging

logger = logging.getLogger(__name__)

report_router = APIRouter(
    prefix="/reports",
    tags=["reports"],
    dependencies=[CLIENT_AUTH],
)


# POST /reports
@report_router.post("", response_model=GenerateReportResponse, status_code=status.HTTP_201_CREATED)
def generate_report_route(
    request: GenerateReportRequest,
    db: Session = DB_DEPENDENCY,
    cache: CacheClient = CACHE_CLIENT
):
    """
    Create a PENDING report and queue its generation.
    Without a time range the report covers the last REPORT_WINDOW_DAYS days.
    """
    try:
        experiments.get_experiment(db, cache, request.experiment_id)
    except ExperimentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    report = report_jobs.create_report_metadata(db, request.experiment_id)
    job = ReportJobParameters(
        experiment_id=request.experiment_id,
        report_id=report.id,
        time_range=request.time_range or report_jobs.default_time_range(config.report_window_days),
        output_bucket=config.reports_bucket,
        output_key=report.s3_location,
    )

    task = generate_report_task.delay(job.model_dump(mode="json", by_alias=True))
    logger.info("Queued report %s for experiment %s as task %s", report.id, request.experiment_id, task.id)

    return GenerateReportResponse(report_id=report.id, status=ReportStatus.PENDING)


# GET /reports
@report_router.get("", response_model=ListReportsResponse)
def list_reports_route(
    db: Session = DB_DEPENDENCY,
    experiment_id: str | None = Query(default=None, alias="experimentId"),
    report_status: ReportStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=report_jobs.DEFAULT_LIST_LIMIT, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    reports, total = report_jobs.list_reports(db, experiment_id, report_status, limit, offset)
    return ListReportsResponse(reports=reports, total=total)


# GET /reports/{report_id}
@report_router.get("/{report_id}", response_model=GetReportResponse)
def get_report_route(report_id: str, db: Session = DB_DEPENDENCY):
    try:
        return GetReportResponse(report=report_jobs.get_report_metadata(db, report_id))
    except ReportNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# GET /reports/{report_id}/data
@report_router.get("/{report_id}/data", response_model=GetReportDataResponse)
def get_report_data_route(
    report_id: str,
    db: Session = DB_DEPENDENCY,
    blob_store: BlobStore = BLOB_STORE
):
    """The uploaded report JSON, available once the report is COMPLETED."""
    try:
        report_data = report_jobs.get_report_data(db, blob_store, config.reports_bucket, report_id)
    except ReportNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ReportNotReadyError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    # serialized by the model so an infinite improvement survives as in the uploaded blob
    return Response(content=GetReportDataResponse(report_data=report_data).to_json(), media_type="application/json")


# PUT /reports/{report_id}/status
@report_router.put("/{report_id}/status", response_model=GetReportResponse)
def update_report_status_route(
    report_id: str,
    update: UpdateReportStatusRequest,
    db: Session = DB_DEPENDENCY
):
    """Internal: lets an out-of-process report generator record its progress."""
    try:
        report_jobs.update_report_status(db, report_id, update.status, update.metrics)
        return GetReportResponse(report=report_jobs.get_report_metadata(db, report_id))
    except ReportNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
