import logging
import sys
from middleware import correlation_id_context

class ContextualFilter(logging.Filter):
    """A logging filter that injects the correlation ID (request or report id) from ContextVar."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = correlation_id_context.get()
        return True

def setup_logging(log_level: str = "INFO", log_filename: str = "experiment_reports.log"):
    log_filter = ContextualFilter()

    # The format must include the custom 'request_id' attribute
    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(request_id)s] - %(name)s - %(message)s'
    )

    handlers = [
        # Handler to send logs to the console (standard output)
        logging.StreamHandler(sys.stdout),
        # Handler to send logs to a file
        logging.FileHandler(log_filename, mode='a'),
    ]

    for handler in handlers:
        handler.addFilter(log_filter)
        handler.setFormatter(formatter)

    # Apply the handlers to the root logger
    logging.basicConfig(level=logging.getLevelName(log_level.upper()), handlers=handlers)

    # engine echo is too chatty at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
