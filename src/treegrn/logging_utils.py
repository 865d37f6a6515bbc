import logging
import os
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self._max_level


def configure_logging(
    logs_dir: Path,
    run_name: str,
    log_level: int = logging.INFO,
    *,
    tree_method: Optional[str] = None,
    seed: Optional[int] = None,
) -> Path:
    """Route records to a per-run file plus stdout/stderr and log the run context.

    ``tree_method`` and ``seed`` are written into the context record so a log can
    be matched to the ensemble settings that produced a weight matrix.
    """

    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"{run_name}.log"

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    file_handler = logging.FileHandler(log_path, mode="w")
    file_handler.setFormatter(formatter)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.INFO)
    stdout_handler.addFilter(_MaxLevelFilter(logging.INFO))
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.addHandler(file_handler)
    root.addHandler(stdout_handler)
    root.addHandler(stderr_handler)
    # joblib's loky backend is chatty at DEBUG
    logging.getLogger("joblib").setLevel(logging.WARNING)

    # first record ties the log to the host, the ensemble method and the seed
    try:
        cwd = os.getcwd()
        host = socket.gethostname()
    except OSError:
        cwd, host = "", ""
    user = os.getenv("USER") or os.getenv("LOGNAME") or ""
    timestamp = datetime.now(timezone.utc).isoformat()
    root.info(
        "Run context | run_name=%s | tree_method=%s | seed=%s | user=%s | cwd=%s | host=%s | pid=%d | timestamp_utc=%s",
        run_name,
        tree_method or "-",
        "-" if seed is None else seed,
        user,
        cwd,
        host,
        os.getpid(),
        timestamp,
    )

    return log_path


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name if name else __name__)
