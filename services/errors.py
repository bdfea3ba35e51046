class ExperimentNotFoundError(LookupError):
    def __init__(self, experiment_id: str):
        super().__init__(f"Experiment {experiment_id} not found.")
        self.experiment_id = experiment_id


class ReportNotFoundError(LookupError):
    def __init__(self, report_id: str):
        super().__init__(f"Report {report_id} not found.")
        self.report_id = report_id


class ReportNotReadyError(RuntimeError):
    def __init__(self, report_id: str, status: str):
        super().__init__(f"Report is not ready. Current status: {status}")
        self.report_id = report_id
        self.status = status


class ReportGenerationError(RuntimeError):
    """Raised by the job runner after the report was marked FAILED."""
