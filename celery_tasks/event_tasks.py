from celery_config import celery_app
from data.database import SessionLocal
from models.events import EventCreate
from services import experiments
from sqlalchemy.exc import OperationalError
from typing import Any
import logging

logger = logging.getLogger(__name__)


# ignore result as we don't need it and it reduces storage bloat
@celery_app.task(bind=True, max_retries=3, default_retry_delay=30, ignore_result=True)
def insert_event_to_db(self, event_data_dict: dict[str, Any]):
    """
    Asynchronously inserts a recorded experiment event into the event store.
    The payload is the JSON dump of an EventCreate.
    """
    event_data = EventCreate.model_validate(event_data_dict)
    db = SessionLocal()
    try:
        db_event = experiments.record_event(db, event_data)
        logger.info(
            "Task %s[%s]. Successfully inserted %s event for user %s on experiment %s.",
            self.name, self.request.id, db_event.action, db_event.user_id, db_event.experiment_id,
        )
    except OperationalError as exc:
        db.rollback()
        logger.error("Database unavailable in Celery task. Retrying...")
        raise self.retry(exc=exc)
    except Exception:
        db.rollback()
        logger.exception("Failed to insert event to DB: %s", event_data_dict)
        raise  # re-raise so Celery marks FAILURE and we can debug it
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30, ignore_result=True)
def insert_events_batch_to_db(self, events_data: list[dict[str, Any]]):
    """
    Inserts a batch of events in a single transaction, all or nothing.
    Each payload is the JSON dump of an EventCreate.
    """
    events = [EventCreate.model_validate(event_data) for event_data in events_data]
    db = SessionLocal()
    try:
        experiments.record_events(db, events)
        logger.info("Task %s[%s]. Successfully inserted %d events.", self.name, self.request.id, len(events))
    except OperationalError as exc:
        db.rollback()
        logger.error("Database unavailable in Celery task. Retrying...")
        raise self.retry(exc=exc)
    except Exception:
        db.rollback()
        logger.exception("Failed to insert batch of %d events to DB", len(events))
        raise
    finally:
        db.close()
