"""
Runs a single report job outside of Celery, e.g. as a batch container.

The job description is read from the JOB_PARAMETERS environment variable:

    {"experimentId": "...", "reportId": "...",
     "timeRange": {"start": "...", "end": "..."},
     "outputBucket": "...", "outputKey": "..."}
"""
import logging
import os
import sys

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import config
from data.database import SessionLocal, create_tables
from models.reports import ReportJobParameters
from services import report_jobs
from services.cache import get_cache_client
from services.errors import ReportGenerationError
from services.storage import get_blob_store

logger = logging.getLogger(__name__)

JOB_PARAMETERS_ENV = "JOB_PARAMETERS"


def parse_job_parameters(raw: str | None) -> ReportJobParameters:
    if not raw:
        raise ValueError(f"{JOB_PARAMETERS_ENV} environment variable is required")
    return ReportJobParameters.model_validate_json(raw)


def main() -> int:
    logger.info("Starting report generator with %s", config)
    try:
        job = parse_job_parameters(os.getenv(JOB_PARAMETERS_ENV))
    except (ValueError, ValidationError) as e:
        logger.error("Invalid job parameters: %s", e)
        return 1

    logger.info("Starting report generation for experiment: %s", job.experiment_id)
    try:
        create_tables()
    except SQLAlchemyError as e:
        logger.error("Failed to initialize database tables: %s", e)
        return 1

    db = SessionLocal()
    try:
        report_jobs.run_report_job(db, get_cache_client(), get_blob_store(), job)
    except ReportGenerationError:
        # details were logged by the job runner
        return 1
    finally:
        db.close()

    logger.info("Report generation completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
