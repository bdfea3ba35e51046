from fastapi import APIRouter, status
from models.events import EventBatchCreate, EventBatchResponse, EventCreate, EventResponse
from api.depends import CLIENT_AUTH

# Import the Celery tasks
from celery_tasks.event_tasks import insert_event_to_db, insert_events_batch_to_db
import logging

logger = logging.getLogger(__name__)

events_router = APIRouter(
    prefix="/events",
    tags=["events"],
    dependencies=[CLIENT_AUTH]
)

@events_router.post("", response_model=EventResponse, status_code=status.HTTP_202_ACCEPTED)
def record_event_route(event_data: EventCreate):
    """
    Record an experiment event (page view, conversion, ...) for a user.
    The event goes straight to a celery worker which inserts it into the events table.
    """
    # Celery requires JSON serializable payloads
    task = insert_event_to_db.delay(event_data.model_dump(mode="json"))
    logger.debug("insert_event_to_db task queued: %s", task.id)

    return EventResponse(status="queued", task_id=task.id)

@events_router.post("/batch", response_model=EventBatchResponse, status_code=status.HTTP_202_ACCEPTED)
def record_events_batch_route(batch: EventBatchCreate):
    """
    Record several events at once. Every event is validated before anything is queued,
    one invalid event rejects the whole batch.
    """
    payload = [event.model_dump(mode="json") for event in batch.events]
    task = insert_events_batch_to_db.delay(payload)
    logger.debug("insert_events_batch_to_db task queued: %s (%d events)", task.id, len(payload))

    return EventBatchResponse(status="queued", task_id=task.id, count=len(payload))
