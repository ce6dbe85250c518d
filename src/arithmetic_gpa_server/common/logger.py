"""Shared logger for the server, workers and client."""
import logging
import os

LOG_LEVEL_ENV: str = "ARITHMETIC_GPA_SERVER_LOG_LEVEL"

logger: logging.Logger = logging.getLogger("arithmetic_gpa_server")

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(processName)s: %(message)s")
    )
    logger.addHandler(_handler)
    logger.setLevel(os.environ.get(LOG_LEVEL_ENV, "INFO").upper())
