from celery_config import celery_app
from data.database import SessionLocal
from models.reports import ReportJobParameters
from services import report_jobs
from services.cache import get_cache_client
from services.storage import get_blob_store
from typing import Any
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, ignore_result=True)
def generate_report_task(self, job_parameters: dict[str, Any]):
    """
    Runs one report job with its own database session.
    The job marks the report FAILED itself, the exception is re-raised so Celery marks FAILURE too.
    """
    job = ReportJobParameters.model_validate(job_parameters)
    logger.info("Task %s[%s] picked up report %s", self.name, self.request.id, job.report_id)

    db = SessionLocal()
    try:
        report_jobs.run_report_job(db, get_cache_client(), get_blob_store(), job)
    finally:
        db.close()
