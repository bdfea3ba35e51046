from sqlalchemy.orm import Session
from data.database import Experiment as ExperimentRow, Variant as VariantRow, Event as EventRow
from models.experiments import ActiveExperiment, Experiment, ExperimentCreate, ExperimentUpdate, Variant
from models.events import EventCreate, ExperimentEvent
from services.cache import CacheClient
from services.errors import ExperimentNotFoundError
import hashlib
import logging
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


def to_iso_utc(moment: datetime) -> str:
    """UTC ISO-8601 with a Z suffix, so stored timestamps compare correctly as text."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_utc_bound(value: str, end: bool = False) -> str:
    """Normalize an ISO-8601 range bound to the stored UTC timestamp format.

    A date-only end bound covers that whole day.
    """
    moment = datetime.fromisoformat(value)
    if end and "T" not in value and " " not in value:
        moment = moment + timedelta(days=1) - timedelta(milliseconds=1)
    return to_iso_utc(moment)


def to_experiment(row: ExperimentRow) -> Experiment:
    """Convert an experiment row (variants in declaration order) to the report model."""
    return Experiment(
        id=row.id,
        name=row.name,
        variants=[Variant(id=v.id, name=v.name, config=v.config or {}) for v in row.variants],
        control_variant_id=row.control_variant_id,
    )

def to_event(row: EventRow) -> ExperimentEvent:
    return ExperimentEvent(
        id=row.id,
        experiment_id=row.experiment_id,
        variant_id=row.variant_id,
        user_id=row.user_id,
        session_id=row.session_id,
        action=row.action,
        metadata=row.metadata_json or {},
        timestamp=row.timestamp,
    )


# --- Experiment Creation ---
def create_new_experiment(db: Session, experiment_data: ExperimentCreate) -> ExperimentRow:
    """Creates a new experiment and its variants, keeping their declared order."""
    db_experiment = ExperimentRow(
        name=experiment_data.name,
        description=experiment_data.description,
        target_user_percentage=experiment_data.target_user_percentage,
    )
    db.add(db_experiment)
    db.flush() # Flush to get the experiment ID before committing

    for position, v in enumerate(experiment_data.variants):
        db_variant = VariantRow(
            experiment_id=db_experiment.id,
            position=position,
            name=v.name,
            config=v.config,
        )
        db.add(db_variant)
        db.flush()

        if v.name == experiment_data.control_variant and db_experiment.control_variant_id is None:
            db_experiment.control_variant_id = db_variant.id

    db.commit()
    db.refresh(db_experiment)
    logger.info("create new experiment %s success with experiment id: %s", experiment_data.name, db_experiment.id)
    return db_experiment


# --- Experiment store ---
def get_experiment(db: Session, cache: CacheClient, experiment_id: str) -> Experiment:
    """Get the experiment definition, from cache first then database."""
    experiment = cache.get_experiment(experiment_id)
    if experiment:
        logger.debug("get_experiment %s cache hit", experiment_id)
        return experiment

    row = db.query(ExperimentRow).filter(ExperimentRow.id == experiment_id).one_or_none()
    if row is None:
        logger.error("Experiment not found with ID: %s", experiment_id)
        raise ExperimentNotFoundError(experiment_id)

    experiment = to_experiment(row)
    cache.set_experiment(experiment)
    logger.debug("get_experiment %s cache miss", experiment_id)
    return experiment


def list_experiments(
    db: Session,
    is_active: bool | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
    offset: int = 0,
) -> tuple[list[ExperimentRow], int]:
    """Experiment rows newest first, with the total count before paging."""
    query = db.query(ExperimentRow)
    if is_active is not None:
        query = query.filter(ExperimentRow.is_active == is_active)

    total = query.count()
    rows = query.order_by(ExperimentRow.created_at.desc()).offset(offset).limit(limit).all()
    return rows, total

def update_experiment(db: Session, cache: CacheClient, experiment_id: str, updates: ExperimentUpdate) -> ExperimentRow:
    """Apply the fields set in `updates` and drop the cached definition."""
    row = db.query(ExperimentRow).filter(ExperimentRow.id == experiment_id).one_or_none()
    if row is None:
        logger.error("Experiment not found with ID: %s", experiment_id)
        raise ExperimentNotFoundError(experiment_id)

    changes = updates.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(row, field, value)
    db.commit()
    db.refresh(row)

    cache.invalidate_experiment(experiment_id)
    logger.info("Updated experiment %s: %s", experiment_id, sorted(changes))
    return row


# --- Active experiments ---
def _stable_hash(value: str) -> int:
    # stable across processes, unlike hash()
    return int.from_bytes(hashlib.sha256(value.encode("utf-8")).digest()[:8], "big")

def assign_variant(experiment: Experiment, target_user_percentage: int, user_id: str, session_id: str) -> Variant | None:
    """
    Deterministic variant for a user session, or None when the session is not enrolled.

    The same user, session and experiment always get the same answer; a new
    session may land in another variant.
    """
    if not experiment.variants:
        return None

    value = _stable_hash(f"{user_id}-{session_id}-{experiment.id}")
    if value % 100 >= target_user_percentage:
        return None
    return experiment.variants[(value // 100) % len(experiment.variants)]

def get_active_experiments_for_user(db: Session, user_id: str, session_id: str) -> list[ActiveExperiment]:
    rows = db.query(ExperimentRow).filter(ExperimentRow.is_active == True).order_by(ExperimentRow.created_at).all()

    active = []
    for row in rows:
        variant = assign_variant(to_experiment(row), row.target_user_percentage, user_id, session_id)
        if variant is not None:
            active.append(ActiveExperiment(experiment_id=row.id, variant_id=variant.id, config=variant.config))

    logger.debug("User %s session %s is in %d of %d active experiments", user_id, session_id, len(active), len(rows))
    return active


# --- Event store ---
def _to_event_row(event_data: EventCreate) -> EventRow:
    return EventRow(
        experiment_id=event_data.experiment_id,
        variant_id=event_data.variant_id,
        user_id=event_data.user_id,
        session_id=event_data.session_id,
        action=event_data.action,
        metadata_json=event_data.metadata or None,
        timestamp=to_iso_utc(event_data.timestamp),
    )

def record_event(db: Session, event_data: EventCreate) -> EventRow:
    db_event = _to_event_row(event_data)
    db.add(db_event)
    db.commit()
    return db_event

def record_events(db: Session, events_data: list[EventCreate]) -> list[EventRow]:
    """Insert a batch of events in one transaction."""
    db_events = [_to_event_row(event_data) for event_data in events_data]
    db.add_all(db_events)
    db.commit()
    return db_events

def get_experiment_events(db: Session, experiment_id: str, start: str, end: str) -> list[ExperimentEvent]:
    """Events of one experiment with start <= timestamp <= end, bounds in any ISO-8601 offset."""
    utc_start = to_utc_bound(start)
    utc_end = to_utc_bound(end, end=True)
    logger.info("Getting experiment events for experiment ID: %s between %s and %s", experiment_id, utc_start, utc_end)

    rows = (
        db.query(EventRow)
        .filter(
            EventRow.experiment_id == experiment_id,
            EventRow.timestamp >= utc_start,
            EventRow.timestamp <= utc_end,
        )
        .order_by(EventRow.timestamp)
        .all()
    )
    events = [to_event(row) for row in rows]

    logger.info("Found %d events for experiment ID: %s", len(events), experiment_id)
    return events
