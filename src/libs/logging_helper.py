import inspect
import logging
import sys

from loguru import logger

from constants import ENV
from constants import LOG_FORMAT
from constants import LOG_LEVEL
from constants import PRODUCT

__all__ = ["logger", "setup_logging"]


class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists.
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message.
        frame, depth = inspect.currentframe(), 0
        while frame:
            filename = frame.f_code.co_filename
            is_logging = filename == logging.__file__
            is_frozen = "importlib" in filename and "_bootstrap" in filename
            if depth > 0 and not (is_logging or is_frozen):
                break
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(level: str = LOG_LEVEL, json_format: bool | None = None) -> None:
    """Route stdlib logging (pipeline modules) into loguru and configure sinks.

    Args:
        level: Minimum level for the stdout sink
        json_format: Serialize records as JSON; defaults to LOG_FORMAT == "json"
    """
    if json_format is None:
        json_format = LOG_FORMAT == "json"

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logger.remove()  # Remove default configuration
    logger.add(
        sys.stdout,
        level=level,
        backtrace=True,
        diagnose=False,
        serialize=json_format,
    )
    if ENV == "dev":
        logger.add(f"/tmp/{PRODUCT}-{ENV}.log", level="DEBUG")
    logger.info("Logging setup completed")
