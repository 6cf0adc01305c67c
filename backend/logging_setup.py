"""
Smart Farming - Logging setup.
Console output through stdlib loggers under "smartfarm", rotating file log through loguru.
"""
import logging

from loguru import logger as loguru_logger

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

LOGGER_NAMES = [
    "smartfarm",          # Root
    "smartfarm.weather",  # Upstream weather client
    "smartfarm.service",  # Refresh cycle
    "smartfarm.push",     # WebSocket broadcast
    "smartfarm.api",      # HTTP routes
]


class LoguruHandler(logging.Handler):
    """Forwards stdlib records to loguru so the file sink sees everything the console does."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        loguru_logger.opt(exception=record.exc_info).bind(name=record.name).log(level, record.getMessage())


def setup_logging(debug_mode: bool = False, log_file: str = "smartfarm.log") -> None:
    """Configure console + file logging once per process."""
    if getattr(setup_logging, "_configured", False):
        return

    level = logging.DEBUG if debug_mode else logging.INFO
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # loguru keeps the persistent file log; its default stderr sink would duplicate the console
    loguru_logger.remove()
    loguru_logger.add(log_file, rotation="10 MB", retention="7 days", level="DEBUG" if debug_mode else "INFO")
    file_handler = LoguruHandler(level=level)

    for name in LOGGER_NAMES:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.setLevel(level)
        lg.addHandler(console_handler)
        lg.addHandler(file_handler)
        lg.propagate = False

    setup_logging._configured = True
    logging.getLogger("smartfarm").info(f"Logging setup complete (debug_mode={debug_mode})")
