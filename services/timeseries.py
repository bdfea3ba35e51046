import logging
from datetime import datetime, timezone, tzinfo
from typing import Sequence
from zoneinfo import ZoneInfo

from models.events import ExperimentEvent
from models.reports import TimeSeries, VariantTimeSeries
from services.aggregation import EventGroups

logger = logging.getLogger(__name__)


class InvalidTimestampError(ValueError):
    def __init__(self, event_id: str, timestamp: str):
        super().__init__(f"Event {event_id} has an invalid timestamp: {timestamp!r}")
        self.event_id = event_id
        self.timestamp = timestamp


def resolve_timezone(tz: str | tzinfo | None) -> tzinfo | None:
    """None keeps the host's local zone."""
    if tz is None or isinstance(tz, tzinfo):
        return tz
    return ZoneInfo(tz)


def to_date_string(event: ExperimentEvent, tz: tzinfo | None = None) -> str:
    """Calendar date (YYYY-MM-DD) of the event timestamp in `tz`. Naive timestamps are UTC."""
    try:
        moment = datetime.fromisoformat(event.timestamp)
    except (TypeError, ValueError):
        raise InvalidTimestampError(event.id, event.timestamp) from None

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date().isoformat()


def build_time_series(
    events: Sequence[ExperimentEvent],
    groups: EventGroups,
    variant_ids: Sequence[str],
    conversion_actions: frozenset[str],
    tz: str | tzinfo | None = None,
) -> TimeSeries:
    """
    Daily event and conversion counts of every variant in `variant_ids`.

    Dates come from all events, so every series has one entry per date and
    variants without events on a day get 0. Conversions are distinct users
    with a conversion action on that day.

    Raises InvalidTimestampError on the first unparseable timestamp.
    """
    zone = resolve_timezone(tz)

    # ISO dates sort chronologically as strings
    dates = sorted({to_date_string(event, zone) for event in events})
    position = {date: i for i, date in enumerate(dates)}

    by_variant: dict[str, VariantTimeSeries] = {}
    for variant_id in variant_ids:
        event_counts = [0] * len(dates)
        converters: list[set[str]] = [set() for _ in dates]

        for event in groups.events_for(variant_id):
            i = position[to_date_string(event, zone)]
            event_counts[i] += 1
            if event.action in conversion_actions:
                converters[i].add(event.user_id)

        by_variant[variant_id] = VariantTimeSeries(
            events=event_counts,
            conversions=[len(users) for users in converters],
        )

    logger.debug("Built time series over %d dates for %d variants", len(dates), len(by_variant))
    return TimeSeries(dates=dates, by_variant=by_variant)
