from enum import Enum
from datetime import datetime, timezone
from pydantic import Field, JsonValue, field_validator, model_validator
from models.common import CamelModel

# --- Report body (uploaded as JSON) ---

class TimeRange(CamelModel):
    """Requested reporting window, ISO-8601 strings echoed verbatim into the report.

    Both bounds must parse as ISO-8601 dates or timestamps and `start` may not
    come after `end`; the event query compares their UTC instants.
    """
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def check_iso_8601(cls, value: str) -> str:
        try:
            datetime.fromisoformat(value)
        except ValueError:
            raise ValueError(f"{value!r} is not an ISO-8601 date or timestamp") from None
        return value

    @model_validator(mode="after")
    def check_order(self):
        start = datetime.fromisoformat(self.start)
        end = datetime.fromisoformat(self.end)
        # naive bounds are UTC
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        if start > end:
            raise ValueError(f"time range start {self.start} is after its end {self.end}")
        return self

class Overall(CamelModel):
    total_users: int = 0
    total_events: int = 0
    conversion_rate: float = 0.0

class VariantMetrics(CamelModel):
    """Metrics of one variant. `improvement` and `significance_level` stay unset for the control."""
    users: int = 0
    # action label -> number of events
    events: dict[str, int] = Field(default_factory=dict)
    # distinct users with at least one conversion action
    conversions: int = 0
    conversion_rate: float = 0.0
    improvement: float | None = None
    significance_level: float | None = None

class VariantTimeSeries(CamelModel):
    events: list[int] = Field(default_factory=list)
    conversions: list[int] = Field(default_factory=list)

class TimeSeries(CamelModel):
    # ascending YYYY-MM-DD, every series is aligned with it
    dates: list[str] = Field(default_factory=list)
    by_variant: dict[str, VariantTimeSeries] = Field(default_factory=dict)

class Metrics(CamelModel):
    overall: Overall = Field(default_factory=Overall)
    by_variant: dict[str, VariantMetrics] = Field(default_factory=dict)
    time_series: TimeSeries = Field(default_factory=TimeSeries)

class ReportData(CamelModel):
    """Schema of the generated report JSON."""
    experiment_id: str
    experiment_name: str
    generated_at: str
    time_range: TimeRange
    metrics: Metrics


# --- Report jobs ---

class ReportStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class ReportJobParameters(CamelModel):
    """Job description handed to a report worker (Celery task or JOB_PARAMETERS env)."""
    experiment_id: str
    report_id: str
    time_range: TimeRange
    output_bucket: str
    output_key: str

class ReportMetadata(CamelModel):
    """Status record of a report, `metrics` holds the summary digest once COMPLETED."""
    id: str
    experiment_id: str
    status: ReportStatus
    s3_location: str
    created_at: str
    updated_at: str
    metrics: dict[str, JsonValue] | None = None

class GenerateReportRequest(CamelModel):
    experiment_id: str
    time_range: TimeRange | None = None

class GenerateReportResponse(CamelModel):
    report_id: str
    status: ReportStatus = ReportStatus.PENDING

class UpdateReportStatusRequest(CamelModel):
    status: ReportStatus
    metrics: dict[str, JsonValue] | None = None

class GetReportResponse(CamelModel):
    report: ReportMetadata

class ListReportsResponse(CamelModel):
    reports: list[ReportMetadata]
    total: int

class GetReportDataResponse(CamelModel):
    report_data: ReportData
