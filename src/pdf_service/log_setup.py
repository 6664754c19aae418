import logging
import sys

LOG_FORMAT = "%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s"


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with a single stdout handler.

    Existing handlers are cleared so repeated calls (e.g. uvicorn reload)
    don't duplicate output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)
