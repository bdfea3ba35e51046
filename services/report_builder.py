from datetime import datetime, timezone, tzinfo
from typing import Any, Sequence
import logging

from models.events import ExperimentEvent
from models.experiments import Experiment
from models.reports import ReportData, TimeRange, TimeSeries
from services import metrics as metrics_service
from services.aggregation import group_events
from services.significance import DEFAULT_SIGNIFICANCE_LEVEL
from services.timeseries import build_time_series

logger = logging.getLogger(__name__)


def assemble_report(
    experiment: Experiment,
    events: Sequence[ExperimentEvent],
    time_range: TimeRange,
    conversion_actions: frozenset[str],
    significance_level: float = DEFAULT_SIGNIFICANCE_LEVEL,
    tz: str | tzinfo | None = None,
    generated_at: datetime | None = None,
) -> ReportData:
    """
    Aggregate the experiment events into a report.

    The requested time range is echoed as given, it is not checked against the
    event timestamps. When the daily series cannot be built the report carries
    an empty time series instead of failing.
    """
    logger.info("Generating report data for experiment %s from %d events", experiment.id, len(events))

    groups = group_events(events)
    metrics = metrics_service.calculate_metrics(
        experiment, events, groups, conversion_actions, significance_level=significance_level
    )

    # no variants: nothing to chart either
    if experiment.variants:
        try:
            time_series = build_time_series(
                events, groups, [v.id for v in experiment.variants], conversion_actions, tz=tz
            )
        except ValueError as e:
            logger.warning("Time series for experiment %s skipped: %s", experiment.id, e)
            time_series = TimeSeries()
        metrics = metrics.model_copy(update={"time_series": time_series})

    generated_at = generated_at or datetime.now(timezone.utc)
    return ReportData(
        experiment_id=experiment.id,
        experiment_name=experiment.name,
        generated_at=generated_at.isoformat(),
        time_range=time_range,
        metrics=metrics,
    )


def summarize(report: ReportData) -> dict[str, Any]:
    """Small digest stored with the report status, not part of the report body."""
    return {
        "totalEvents": report.metrics.overall.total_events,
        "variantCounts": {
            variant_id: variant.users for variant_id, variant in report.metrics.by_variant.items()
        },
    }
