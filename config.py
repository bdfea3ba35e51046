import os
import log
from dotenv import load_dotenv

# Load .env file into environment
load_dotenv()

DEFAULT_CONVERSION_ACTIONS = "CONVERSION,LOAN_ACCEPTANCE"


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    def __init__(self):
        self.valkey_host = os.getenv("VALKEY_HOST", "localhost")
        self.valkey_port = int(os.getenv("VALKEY_PORT", 6379))
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./experiment_reports.db")
        self.log_level = os.getenv("LOG_LEVEL", default="INFO")
        self.valid_tokens = _split_csv(os.getenv("VALID_TOKENS"))
        self.celery_broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
        self.celery_backend_url = os.getenv("CELERY_BACKEND_URL", "redis://localhost:6379/1")

        # Report engine settings
        self.conversion_actions = frozenset(
            _split_csv(os.getenv("CONVERSION_ACTIONS", DEFAULT_CONVERSION_ACTIONS))
        )
        self.significance_level = float(os.getenv("SIGNIFICANCE_LEVEL", 0.05))
        # empty means the host's local zone
        self.report_timezone = os.getenv("REPORT_TIMEZONE") or None
        self.report_window_days = int(os.getenv("REPORT_WINDOW_DAYS", 30))

        # Report blob storage: "s3", or "local" to keep reports under REPORTS_DIR
        self.reports_store = os.getenv("REPORTS_STORE", "s3").lower()
        self.reports_bucket = os.getenv("REPORTS_BUCKET", "experiment-reports")
        self.reports_dir = os.getenv("REPORTS_DIR", "./reports")
        self.aws_region = os.getenv("AWS_REGION", "us-east-1")
        # e.g. a MinIO or LocalStack endpoint, unset for AWS
        self.s3_endpoint_url = os.getenv("S3_ENDPOINT_URL") or None

        # Call setup_logging when the application starts
        log.setup_logging(self.log_level)

    def __repr__(self):
        return (
            f"<Settings host={self.valkey_host} port={self.valkey_port} loglevel={self.log_level}, "
            f"broker_url:{self.celery_broker_url}, backend_url:{self.celery_backend_url}, "
            f"conversion_actions:{sorted(self.conversion_actions)}, reports_store:{self.reports_store}>"
        )

config = Config()
