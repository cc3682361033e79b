import logging
import sys
from pathlib import Path
import structlog
from ad_intel.config import LOG_LEVEL, LOG_FILE


def setup_logging(level: str = LOG_LEVEL, log_file: Path = LOG_FILE):
    """Route structlog events through stdlib logging to stdout and the log file."""
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    numeric_level = getattr(logging, level.upper())

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    root = logging.getLogger()
    log_path = str(log_file.resolve())
    if not any(getattr(h, "baseFilename", None) == log_path for h in root.handlers):
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        root.addHandler(file_handler)

    renderer = structlog.dev.ConsoleRenderer() if sys.stdout.isatty() else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Get a structured logger instance."""
    return structlog.get_logger(name)


# Context bound here is attached to every event logged inside the block
bound_context = structlog.contextvars.bound_contextvars

setup_logging()
logger = get_logger("ad_intel")
