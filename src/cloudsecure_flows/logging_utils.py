"""
Logging for CloudSecure Flows.

Handlers live on the package logger, so every ``cloudsecure_flows.*``
module logger reaches the console and the rotating log file once an
entry point calls ``setup_logger``. Runs are tagged with a short id;
successful run results are kept as JSON next to the log file.
"""

import json
import logging
import logging.handlers
import uuid

from pathlib import Path
from typing import Any, Dict, Optional

PACKAGE_LOGGER = "cloudsecure_flows"
LOG_DIR_NAME = ".cloudsecure-flows"
LOG_FILE_NAME = "cloudsecure-flows.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_log_dir() -> Path:
    """Directory holding the log file and stored run results."""
    return Path.home() / LOG_DIR_NAME


def get_log_file() -> Path:
    return get_log_dir() / LOG_FILE_NAME


def configure_package_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach file and console handlers to the package logger, once."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    if package_logger.handlers:
        return package_logger

    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        get_log_file(),
        maxBytes=30 * 1024 * 1024,  # 30MB
        backupCount=5,
    )
    console_handler = logging.StreamHandler()

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in (file_handler, console_handler):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    return package_logger


def reset_package_logging() -> None:
    """Detach and close the package handlers (log directory changes, tests)."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()


def setup_logger(name: str) -> logging.Logger:
    """Logger for an entry point; must be inside the package namespace."""
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        raise ValueError(f"Logger '{name}' is outside the '{PACKAGE_LOGGER}' namespace")
    configure_package_logging()
    return logging.getLogger(name)


def generate_run_id() -> str:
    """Generate unique run ID."""
    return str(uuid.uuid4())[:8]


def log_run_start(logger: logging.Logger, run_id: str, **kwargs: Any) -> None:
    """Log run start with parameters."""
    logger.info(f"Run {run_id} started - {kwargs}")


def log_run_end(
    logger: logging.Logger,
    run_id: str,
    success: bool,
    result_data: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> None:
    """Log run completion with optional result data."""
    status = "SUCCESS" if success else "FAILED"
    log_data = {"run_id": run_id, "status": status, **kwargs}

    if result_data:
        log_data["result_data"] = result_data
        store_run_result(run_id, result_data)

    logger.info(f"Run {run_id} {status} - {json.dumps(log_data, default=str)}")


def store_run_result(run_id: str, result_data: Dict[str, Any]) -> None:
    """Store run result data for later retrieval."""
    results_dir = get_log_dir() / "results"
    results_dir.mkdir(parents=True, exist_ok=True)

    result_file = results_dir / f"{run_id}.json"
    with open(result_file, "w") as f:
        json.dump(result_data, f, indent=2, default=str)


def get_run_result(run_id: str) -> Optional[Dict[str, Any]]:
    """Retrieve stored run result by ID."""
    result_file = get_log_dir() / "results" / f"{run_id}.json"

    if result_file.exists():
        with open(result_file, "r") as f:
            return json.load(f)  # type: ignore[no-any-return]
    return None
