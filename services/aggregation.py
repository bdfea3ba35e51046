from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from models.events import ExperimentEvent


@dataclass(frozen=True)
class EventGroups:
    """Events and distinct user ids keyed by variant id.

    Variant ids are taken from the events as-is, ids the experiment does not
    declare show up as extra keys.
    """
    events_by_variant: dict[str, list[ExperimentEvent]] = field(default_factory=dict)
    users_by_variant: dict[str, frozenset[str]] = field(default_factory=dict)

    def events_for(self, variant_id: str) -> list[ExperimentEvent]:
        return self.events_by_variant.get(variant_id, [])

    def users_for(self, variant_id: str) -> frozenset[str]:
        return self.users_by_variant.get(variant_id, frozenset())

    def all_users(self) -> set[str]:
        return set().union(*self.users_by_variant.values())


def group_events(events: Iterable[ExperimentEvent]) -> EventGroups:
    events_by_variant: dict[str, list[ExperimentEvent]] = defaultdict(list)
    users_by_variant: dict[str, set[str]] = defaultdict(set)

    for event in events:
        events_by_variant[event.variant_id].append(event)
        users_by_variant[event.variant_id].add(event.user_id)

    return EventGroups(
        events_by_variant=dict(events_by_variant),
        users_by_variant={variant_id: frozenset(users) for variant_id, users in users_by_variant.items()},
    )


def converted_users(events: Iterable[ExperimentEvent], conversion_actions: frozenset[str]) -> set[str]:
    """Distinct users with at least one conversion action among `events`."""
    return {event.user_id for event in events if event.action in conversion_actions}
