"""
Overall and per-variant conversion metrics.

Metrics are computed in two phases: base metrics (users, action counts,
conversions, rate) for every declared variant first, then the comparison of
every non-control variant against the finished control baseline.
"""
import logging
import math
from dataclasses import dataclass
from typing import Sequence

from models.events import ExperimentEvent
from models.experiments import Experiment
from models.reports import Metrics, Overall, VariantMetrics
from services import significance
from services.aggregation import EventGroups, converted_users

logger = logging.getLogger(__name__)

# Applied when a variant cannot be compared with the control
DEFAULT_IMPROVEMENT = 0.0
DEFAULT_SIGNIFICANCE = 1.0


@dataclass(frozen=True)
class Comparison:
    """Outcome of comparing one variant with the control."""
    improvement: float = DEFAULT_IMPROVEMENT
    significance: float = DEFAULT_SIGNIFICANCE
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: str) -> "Comparison":
        return cls(error=error)


def conversion_rate(conversions: int, users: int) -> float:
    return conversions / users if users > 0 else 0.0


def calculate_overall(
    events: Sequence[ExperimentEvent],
    groups: EventGroups,
    conversion_actions: frozenset[str],
) -> Overall:
    # union, a user seen under several variants counts once
    all_users = groups.all_users()
    converted = converted_users(events, conversion_actions)
    return Overall(
        total_users=len(all_users),
        total_events=len(events),
        conversion_rate=conversion_rate(len(converted), len(all_users)),
    )


def calculate_variant_metrics(
    variant_events: Sequence[ExperimentEvent],
    variant_users: frozenset[str],
    conversion_actions: frozenset[str],
) -> VariantMetrics:
    action_counts: dict[str, int] = {}
    for event in variant_events:
        action_counts[event.action] = action_counts.get(event.action, 0) + 1

    conversions = len(converted_users(variant_events, conversion_actions))
    return VariantMetrics(
        users=len(variant_users),
        events=action_counts,
        conversions=conversions,
        conversion_rate=conversion_rate(conversions, len(variant_users)),
    )


def compare_to_control(control: VariantMetrics, variant: VariantMetrics) -> Comparison:
    """Improvement and p-value of `variant` over `control`, or a failed Comparison."""
    try:
        lift = significance.improvement(control.conversion_rate, variant.conversion_rate)
        p_value = significance.significance(
            control.users,
            control.conversions,
            variant.users,
            variant.conversions,
        )
    except (ArithmeticError, ValueError) as e:
        return Comparison.failed(str(e))

    if math.isnan(lift):
        return Comparison.failed("improvement is undefined")
    if math.isnan(p_value):
        return Comparison.failed("significance test is undefined")
    return Comparison(improvement=lift, significance=p_value)


def calculate_metrics(
    experiment: Experiment,
    events: Sequence[ExperimentEvent],
    groups: EventGroups,
    conversion_actions: frozenset[str],
    significance_level: float = significance.DEFAULT_SIGNIFICANCE_LEVEL,
) -> Metrics:
    """Build the metrics block; the time series is left empty for the caller to fill."""
    overall = calculate_overall(events, groups, conversion_actions)

    control_variant = experiment.control_variant
    if control_variant is None:
        logger.warning("Experiment %s has no variants, reporting overall metrics only.", experiment.id)
        return Metrics(overall=overall)

    declared = [v.id for v in experiment.variants]
    unknown = sorted(set(groups.events_by_variant) - set(declared))
    if unknown:
        logger.warning("Experiment %s has events for undeclared variants %s", experiment.id, unknown)

    # Phase 1: base metrics for every variant, control included
    by_variant: dict[str, VariantMetrics] = {
        variant_id: calculate_variant_metrics(
            groups.events_for(variant_id),
            groups.users_for(variant_id),
            conversion_actions,
        )
        for variant_id in declared
    }

    # Phase 2: non-control variants against the finished control baseline
    control = by_variant[control_variant.id]
    for variant_id in declared:
        if variant_id == control_variant.id:
            continue

        comparison = compare_to_control(control, by_variant[variant_id])
        if not comparison.ok:
            logger.warning(
                "Could not compare variant %s with control %s (%s), using improvement=%s significance=%s",
                variant_id, control_variant.id, comparison.error, DEFAULT_IMPROVEMENT, DEFAULT_SIGNIFICANCE,
            )
        else:
            logger.info(
                "Variant %s: improvement=%.2f%% p=%.4f significant=%s",
                variant_id, comparison.improvement, comparison.significance,
                significance.is_significant(comparison.significance, significance_level),
            )

        by_variant[variant_id] = by_variant[variant_id].model_copy(
            update={
                "improvement": comparison.improvement,
                "significance_level": comparison.significance,
            }
        )

    return Metrics(overall=overall, by_variant=by_variant)
