"""Conversion-rate comparisons between a variant and the control."""
import logging
import math

from scipy import stats

logger = logging.getLogger(__name__)

DEFAULT_SIGNIFICANCE_LEVEL = 0.05


def improvement(control_rate: float, treatment_rate: float) -> float:
    """Relative change of the treatment rate over the control rate, in percent.

    A 0% control gives +inf when the treatment converted at all, 0.0 otherwise.
    """
    if control_rate == 0:
        return math.inf if treatment_rate > 0 else 0.0
    return (treatment_rate - control_rate) / control_rate * 100


def significance(
    control_users: int,
    control_conversions: int,
    treatment_users: int,
    treatment_conversions: int,
) -> float:
    """
    Two-sided exact binomial test of the treatment conversions against the control rate.

    The control conversion rate is the null-hypothesis success probability and the
    treatment users are the trials. Returns the p-value, or NaN when the test is
    undefined for the given counts (e.g. an empty control group).
    """
    try:
        if control_users <= 0:
            raise ValueError("control group has no users")
        control_rate = control_conversions / control_users
        result = stats.binomtest(
            treatment_conversions,
            n=treatment_users,
            p=control_rate,
            alternative="two-sided",
        )
        return float(result.pvalue)
    except (ValueError, TypeError, ZeroDivisionError) as e:
        logger.error(
            "Error calculating statistical significance (control %s/%s, treatment %s/%s): %s",
            control_conversions, control_users, treatment_conversions, treatment_users, e,
        )
        return math.nan


def is_significant(p_value: float, level: float = DEFAULT_SIGNIFICANCE_LEVEL) -> bool:
    """True when the p-value is known and at or below `level`."""
    return not math.isnan(p_value) and p_value <= level
