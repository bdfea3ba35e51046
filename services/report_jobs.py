"""
Report jobs: status records and the job runner.

A job moves its report PENDING -> PROCESSING -> COMPLETED, or to FAILED on
any error. The runner loads the experiment and its events for the requested
window, builds the report, uploads it as JSON and stores the summary digest
with the COMPLETED status.
"""
from datetime import datetime, timedelta, timezone
from typing import Any
import logging

from sqlalchemy.orm import Session

from config import config
from data.database import Report as ReportRow
from middleware import bind_correlation_id
from models.reports import ReportData, ReportJobParameters, ReportMetadata, ReportStatus, TimeRange
from services import experiments
from services.cache import CacheClient
from services.errors import ReportGenerationError, ReportNotFoundError, ReportNotReadyError
from services.report_builder import assemble_report, summarize
from services.storage import BlobStore

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


def report_location(experiment_id: str, report_id: str) -> str:
    return f"reports/{experiment_id}/{report_id}.json"

def default_time_range(days: int, now: datetime | None = None) -> TimeRange:
    """The last `days` days up to now."""
    now = now or datetime.now(timezone.utc)
    return TimeRange(
        start=experiments.to_iso_utc(now - timedelta(days=days)),
        end=experiments.to_iso_utc(now),
    )

def to_report_metadata(row: ReportRow) -> ReportMetadata:
    return ReportMetadata(
        id=row.id,
        experiment_id=row.experiment_id,
        status=ReportStatus(row.status),
        s3_location=row.s3_location,
        created_at=experiments.to_iso_utc(row.created_at),
        updated_at=experiments.to_iso_utc(row.updated_at),
        metrics=row.metrics,
    )


# --- Report metadata ---

def create_report_metadata(db: Session, experiment_id: str) -> ReportRow:
    row = ReportRow(experiment_id=experiment_id, status=ReportStatus.PENDING.value)
    db.add(row)
    db.flush() # Flush to get the report ID for its location
    row.s3_location = report_location(experiment_id, row.id)
    db.commit()
    db.refresh(row)
    logger.info("Created report %s for experiment %s", row.id, experiment_id)
    return row

def _get_report_row(db: Session, report_id: str) -> ReportRow:
    row = db.query(ReportRow).filter(ReportRow.id == report_id).one_or_none()
    if row is None:
        raise ReportNotFoundError(report_id)
    return row

def get_report_metadata(db: Session, report_id: str) -> ReportMetadata:
    return to_report_metadata(_get_report_row(db, report_id))

def list_reports(
    db: Session,
    experiment_id: str | None = None,
    status: ReportStatus | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
    offset: int = 0,
) -> tuple[list[ReportMetadata], int]:
    """Reports newest first, with the total count before paging."""
    query = db.query(ReportRow)
    if experiment_id:
        query = query.filter(ReportRow.experiment_id == experiment_id)
    if status:
        query = query.filter(ReportRow.status == ReportStatus(status).value)

    total = query.count()
    rows = query.order_by(ReportRow.created_at.desc()).offset(offset).limit(limit).all()
    return [to_report_metadata(row) for row in rows], total

def update_report_status(db: Session, report_id: str, status: ReportStatus, metrics: dict[str, Any] | None = None):
    logger.info("Updating report status for report ID: %s to %s", report_id, status.value)

    row = _get_report_row(db, report_id)
    row.status = status.value
    if metrics is not None:
        row.metrics = metrics
        logger.info("Updated report metrics for report ID: %s: %s", report_id, metrics)
    db.commit()

def get_report_data(db: Session, blob_store: BlobStore, bucket: str, report_id: str) -> ReportData:
    """Load the uploaded report JSON of a COMPLETED report."""
    metadata = get_report_metadata(db, report_id)
    if metadata.status != ReportStatus.COMPLETED:
        raise ReportNotReadyError(report_id, metadata.status.value)

    report_json = blob_store.get_report(bucket, metadata.s3_location)
    if report_json is None:
        raise ReportNotFoundError(report_id)
    return ReportData.model_validate_json(report_json)


# --- Job runner ---

def run_report_job(
    db: Session,
    cache: CacheClient,
    blob_store: BlobStore,
    job: ReportJobParameters,
    conversion_actions: frozenset[str] | None = None,
    significance_level: float | None = None,
    tz: str | None = None,
) -> ReportData:
    """
    Generate, upload and record one report.

    Any failure marks the report FAILED and is re-raised as ReportGenerationError.
    A failure while marking FAILED is only logged.
    """
    conversion_actions = conversion_actions or config.conversion_actions
    significance_level = significance_level if significance_level is not None else config.significance_level
    tz = tz or config.report_timezone

    with bind_correlation_id(job.report_id):
        try:
            logger.info("Generating report for experiment: %s", job.experiment_id)
            update_report_status(db, job.report_id, ReportStatus.PROCESSING)

            experiment = experiments.get_experiment(db, cache, job.experiment_id)
            events = experiments.get_experiment_events(
                db, job.experiment_id, job.time_range.start, job.time_range.end
            )

            report = assemble_report(
                experiment,
                events,
                job.time_range,
                conversion_actions,
                significance_level=significance_level,
                tz=tz,
            )
            blob_store.put_report(job.output_bucket, job.output_key, report.to_json())

            update_report_status(db, job.report_id, ReportStatus.COMPLETED, summarize(report))
            logger.info("Report generation completed for experiment: %s", job.experiment_id)
            return report
        except Exception as e:
            logger.exception("Error generating report for experiment: %s", job.experiment_id)
            try:
                db.rollback()
                update_report_status(db, job.report_id, ReportStatus.FAILED)
            except Exception:
                logger.exception("Error updating report status to FAILED")

            raise ReportGenerationError(f"Failed to generate report for experiment: {job.experiment_id}") from e
