# app/core/logging_config.py
"""
Logging configuration for the bulk email service.
Provides console output plus rotating log files, with a dedicated
file for the campaign batch engine.
"""
import logging
import logging.handlers
import sys
from pathlib import Path


# Create logs directory
LOGS_DIR = Path(__file__).parent.parent.parent / "logs"

# Log files
ERROR_LOG_FILE = LOGS_DIR / "error.log"
DEBUG_LOG_FILE = LOGS_DIR / "debug.log"
CAMPAIGN_LOG_FILE = LOGS_DIR / "campaigns.log"

CAMPAIGN_LOGGER = "bulkmail.campaigns"


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for better readability"""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        log_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{log_color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def _rotating_handler(path: Path, level: int, fmt: str, max_mb: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(app_name: str = "bulkmail", level: str = "INFO"):
    """
    Setup logging with console and file handlers.

    Creates three log files:
    - error.log: Only ERROR and CRITICAL messages
    - debug.log: All DEBUG and above messages
    - campaigns.log: Batch engine activity (bulkmail.campaigns.*)
    """
    LOGS_DIR.mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # ═══════════════════════════════════════════════════════════
    # Console Handler - with colors
    # ═══════════════════════════════════════════════════════════
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(ColoredFormatter('%(levelname)s | %(name)s | %(message)s'))
    root_logger.addHandler(console_handler)

    # ═══════════════════════════════════════════════════════════
    # ERROR / DEBUG Log Files - Rotating
    # ═══════════════════════════════════════════════════════════
    root_logger.addHandler(_rotating_handler(
        ERROR_LOG_FILE,
        logging.ERROR,
        '%(asctime)s | %(levelname)s | %(name)s | %(filename)s:%(lineno)d | %(message)s',
        max_mb=10
    ))
    root_logger.addHandler(_rotating_handler(
        DEBUG_LOG_FILE,
        logging.DEBUG,
        '%(asctime)s | %(levelname)-8s | %(name)-30s | %(filename)s:%(lineno)d | %(message)s',
        max_mb=20
    ))

    # ═══════════════════════════════════════════════════════════
    # Campaign Log File - batch engine only
    # ═══════════════════════════════════════════════════════════
    campaign_logger = logging.getLogger(CAMPAIGN_LOGGER)
    campaign_logger.addHandler(_rotating_handler(
        CAMPAIGN_LOG_FILE,
        logging.DEBUG,
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        max_mb=20
    ))
    campaign_logger.setLevel(logging.DEBUG)
    campaign_logger.propagate = True  # Also send to root handlers

    # Quiet noisy client libraries
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"{'='*60}")
    logger.info(f"Logging initialized for {app_name}")
    logger.info(f"Log directory: {LOGS_DIR}")
    logger.info(f"Campaign log: {CAMPAIGN_LOG_FILE}")
    logger.info(f"{'='*60}")

    return root_logger


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask a token for logging, keeping the last few characters"""
    if not value:
        return ""
    if len(value) <= visible:
        return "***"
    return "***" + value[-visible:]
