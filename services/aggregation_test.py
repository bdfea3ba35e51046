import unittest

from models.events import ExperimentEvent
from services.aggregation import converted_users, group_events

CONVERSION_ACTIONS = frozenset({"CONVERSION", "LOAN_ACCEPTANCE"})


def make_event(event_id, variant_id, user_id, action="PAGE_VIEW", timestamp="2025-01-01T12:00:00Z"):
    return ExperimentEvent(
        id=event_id,
        experiment_id="exp1",
        variant_id=variant_id,
        user_id=user_id,
        session_id=f"session-{user_id}",
        action=action,
        timestamp=timestamp,
    )


class TestGroupEvents(unittest.TestCase):

    def test_empty_input(self):
        groups = group_events([])
        self.assertEqual(groups.events_by_variant, {})
        self.assertEqual(groups.users_by_variant, {})
        self.assertEqual(groups.all_users(), set())

    def test_groups_events_and_distinct_users_by_variant(self):
        events = [
            make_event("e1", "var1", "u1"),
            make_event("e2", "var1", "u1", action="CONVERSION"),
            make_event("e3", "var1", "u2"),
            make_event("e4", "var2", "u3"),
        ]

        groups = group_events(events)

        self.assertEqual([e.id for e in groups.events_for("var1")], ["e1", "e2", "e3"])
        self.assertEqual([e.id for e in groups.events_for("var2")], ["e4"])
        self.assertEqual(groups.users_for("var1"), frozenset({"u1", "u2"}))
        self.assertEqual(groups.users_for("var2"), frozenset({"u3"}))

    def test_unknown_variants_pass_through(self):
        groups = group_events([make_event("e1", "ghost", "u1")])
        self.assertIn("ghost", groups.events_by_variant)
        self.assertEqual(groups.users_for("missing"), frozenset())
        self.assertEqual(groups.events_for("missing"), [])

    def test_all_users_is_a_union(self):
        events = [
            make_event("e1", "var1", "u1"),
            make_event("e2", "var2", "u1"),
            make_event("e3", "var2", "u2"),
        ]
        self.assertEqual(group_events(events).all_users(), {"u1", "u2"})

    def test_order_does_not_change_groupings(self):
        events = [make_event(f"e{i}", f"var{i % 2}", f"u{i % 5}") for i in range(20)]
        forward = group_events(events)
        backward = group_events(list(reversed(events)))
        self.assertEqual(forward.users_by_variant, backward.users_by_variant)
        self.assertEqual(
            {k: sorted(e.id for e in v) for k, v in forward.events_by_variant.items()},
            {k: sorted(e.id for e in v) for k, v in backward.events_by_variant.items()},
        )


class TestConvertedUsers(unittest.TestCase):

    def test_both_labels_count_once_per_user(self):
        events = [
            make_event("e1", "var1", "u1", action="CONVERSION"),
            make_event("e2", "var1", "u1", action="CONVERSION"),
            make_event("e3", "var1", "u2", action="LOAN_ACCEPTANCE"),
            make_event("e4", "var1", "u3", action="PAGE_VIEW"),
        ]
        self.assertEqual(converted_users(events, CONVERSION_ACTIONS), {"u1", "u2"})

    def test_labels_are_injectable(self):
        events = [make_event("e1", "var1", "u1", action="SIGNUP")]
        self.assertEqual(converted_users(events, CONVERSION_ACTIONS), set())
        self.assertEqual(converted_users(events, frozenset({"SIGNUP"})), {"u1"})
