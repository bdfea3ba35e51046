import json
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, call, patch

from models.events import ExperimentEvent
from models.experiments import Experiment, Variant
from models.reports import ReportJobParameters, ReportStatus, TimeRange
from services import report_jobs
from services.cache import get_mock_cache_client
from services.errors import (
    ExperimentNotFoundError,
    ReportGenerationError,
    ReportNotFoundError,
    ReportNotReadyError,
)
from services.storage import get_mock_blob_store

CONVERSION_ACTIONS = frozenset({"CONVERSION", "LOAN_ACCEPTANCE"})


def make_job():
    return ReportJobParameters(
        experiment_id="exp123",
        report_id="rep456",
        time_range=TimeRange(start="2025-01-01T00:00:00.000Z", end="2025-01-31T00:00:00.000Z"),
        output_bucket="test-bucket",
        output_key="reports/exp123/rep456.json",
    )


def make_experiment():
    return Experiment(
        id="exp123",
        name="Test Experiment",
        variants=[Variant(id="var1", name="Control"), Variant(id="var2", name="Treatment")],
    )


def make_events():
    events = []
    for i, (variant_id, action) in enumerate([
        ("var1", "PAGE_VIEW"), ("var1", "CONVERSION"), ("var2", "PAGE_VIEW"), ("var2", "LOAN_ACCEPTANCE"),
    ]):
        events.append(ExperimentEvent(
            id=f"e{i}", experiment_id="exp123", variant_id=variant_id,
            user_id=f"user-{variant_id}", action=action, timestamp="2025-01-15T10:00:00.000Z",
        ))
    return events


class TestRunReportJob(unittest.TestCase):

    def setUp(self):
        self.db = MagicMock()
        self.cache = get_mock_cache_client()
        self.blob_store = get_mock_blob_store()
        self.job = make_job()

    def run_job(self):
        return report_jobs.run_report_job(
            self.db, self.cache, self.blob_store, self.job,
            conversion_actions=CONVERSION_ACTIONS, significance_level=0.05, tz="UTC",
        )

    @patch("services.report_jobs.update_report_status")
    @patch("services.report_jobs.experiments.get_experiment_events")
    @patch("services.report_jobs.experiments.get_experiment")
    def test_successful_job(self, mock_get_experiment, mock_get_events, mock_update_status):
        mock_get_experiment.return_value = make_experiment()
        mock_get_events.return_value = make_events()

        report = self.run_job()

        mock_get_experiment.assert_called_once_with(self.db, self.cache, "exp123")
        mock_get_events.assert_called_once_with(
            self.db, "exp123", "2025-01-01T00:00:00.000Z", "2025-01-31T00:00:00.000Z"
        )
        self.assertEqual(mock_update_status.call_args_list, [
            call(self.db, "rep456", ReportStatus.PROCESSING),
            call(self.db, "rep456", ReportStatus.COMPLETED,
                 {"totalEvents": 4, "variantCounts": {"var1": 1, "var2": 1}}),
        ])

        uploaded = self.blob_store.get_report("test-bucket", "reports/exp123/rep456.json")
        self.assertIsNotNone(uploaded)
        body = json.loads(uploaded)
        self.assertEqual(body["experimentId"], "exp123")
        self.assertEqual(body["metrics"]["overall"]["totalEvents"], 4)
        self.assertEqual(report.metrics.overall.total_users, 2)

    @patch("services.report_jobs.update_report_status")
    @patch("services.report_jobs.experiments.get_experiment")
    def test_missing_experiment_marks_failed(self, mock_get_experiment, mock_update_status):
        mock_get_experiment.side_effect = ExperimentNotFoundError("exp123")

        with self.assertRaises(ReportGenerationError) as ctx:
            self.run_job()

        self.assertIsInstance(ctx.exception.__cause__, ExperimentNotFoundError)
        self.db.rollback.assert_called_once()
        self.assertEqual(mock_update_status.call_args_list[-1], call(self.db, "rep456", ReportStatus.FAILED))
        self.assertIsNone(self.blob_store.get_report("test-bucket", "reports/exp123/rep456.json"))

    @patch("services.report_jobs.update_report_status")
    @patch("services.report_jobs.experiments.get_experiment_events")
    @patch("services.report_jobs.experiments.get_experiment")
    def test_upload_failure_marks_failed(self, mock_get_experiment, mock_get_events, mock_update_status):
        mock_get_experiment.return_value = make_experiment()
        mock_get_events.return_value = make_events()
        self.blob_store.backend = MagicMock()
        self.blob_store.backend.put.side_effect = OSError("disk full")

        with self.assertRaises(ReportGenerationError):
            self.run_job()

        statuses = [c.args[2] for c in mock_update_status.call_args_list]
        self.assertEqual(statuses, [ReportStatus.PROCESSING, ReportStatus.FAILED])

    @patch("services.report_jobs.update_report_status")
    @patch("services.report_jobs.experiments.get_experiment")
    def test_failure_to_mark_failed_is_only_logged(self, mock_get_experiment, mock_update_status):
        mock_get_experiment.side_effect = ExperimentNotFoundError("exp123")

        def update(db, report_id, status, metrics=None):
            if status == ReportStatus.FAILED:
                raise RuntimeError("database unavailable")

        mock_update_status.side_effect = update

        with self.assertLogs("services.report_jobs", level="ERROR") as logs:
            with self.assertRaises(ReportGenerationError) as ctx:
                self.run_job()

        # the original error is reported, not the status update failure
        self.assertIsInstance(ctx.exception.__cause__, ExperimentNotFoundError)
        self.assertTrue(any("FAILED" in line for line in logs.output))


class TestReportMetadata(unittest.TestCase):

    def test_report_location(self):
        self.assertEqual(report_jobs.report_location("exp1", "rep1"), "reports/exp1/rep1.json")

    def test_default_time_range(self):
        now = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)
        time_range = report_jobs.default_time_range(30, now=now)
        self.assertEqual(time_range.start, "2025-03-01T12:00:00.000Z")
        self.assertEqual(time_range.end, "2025-03-31T12:00:00.000Z")

    def test_update_report_status(self):
        row = MagicMock(status="PENDING", metrics=None)
        db = MagicMock()
        db.query.return_value.filter.return_value.one_or_none.return_value = row

        report_jobs.update_report_status(db, "rep1", ReportStatus.COMPLETED, {"totalEvents": 3})

        self.assertEqual(row.status, "COMPLETED")
        self.assertEqual(row.metrics, {"totalEvents": 3})
        db.commit.assert_called_once()

    def test_update_unknown_report(self):
        db = MagicMock()
        db.query.return_value.filter.return_value.one_or_none.return_value = None

        with self.assertRaises(ReportNotFoundError):
            report_jobs.update_report_status(db, "missing", ReportStatus.FAILED)
        db.commit.assert_not_called()


class TestGetReportData(unittest.TestCase):

    def make_row(self, status):
        moment = datetime(2025, 1, 1, tzinfo=timezone.utc)
        return MagicMock(
            id="rep1", experiment_id="exp1", status=status, s3_location="reports/exp1/rep1.json",
            created_at=moment, updated_at=moment, metrics=None,
        )

    def make_db(self, row):
        db = MagicMock()
        db.query.return_value.filter.return_value.one_or_none.return_value = row
        return db

    def test_not_completed(self):
        db = self.make_db(self.make_row("PROCESSING"))

        with self.assertRaises(ReportNotReadyError) as ctx:
            report_jobs.get_report_data(db, get_mock_blob_store(), "bucket", "rep1")
        self.assertEqual(ctx.exception.status, "PROCESSING")

    def test_completed_but_blob_missing(self):
        db = self.make_db(self.make_row("COMPLETED"))

        with self.assertRaises(ReportNotFoundError):
            report_jobs.get_report_data(db, get_mock_blob_store(), "bucket", "rep1")

    def test_completed(self):
        db = self.make_db(self.make_row("COMPLETED"))
        blob_store = get_mock_blob_store()
        blob_store.put_report("bucket", "reports/exp1/rep1.json", json.dumps({
            "experimentId": "exp1",
            "experimentName": "Test",
            "generatedAt": "2025-01-02T00:00:00+00:00",
            "timeRange": {"start": "2025-01-01", "end": "2025-01-02"},
            "metrics": {"overall": {"totalUsers": 1, "totalEvents": 2, "conversionRate": 1.0}},
        }))

        report = report_jobs.get_report_data(db, blob_store, "bucket", "rep1")

        self.assertEqual(report.experiment_id, "exp1")
        self.assertEqual(report.metrics.overall.total_events, 2)
        self.assertEqual(report.metrics.by_variant, {})
