import logging
import json
import time
from datetime import datetime, timezone

import numpy as np

# child loggers configured by setup_logging, one per emitting module
COMPONENTS = ('stepper', 'scheduler', 'policy', 'hard_invariants', 'receipts')


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra_data`` keys are merged at top level."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": record.name.rpartition('.')[2],
            "message": record.getMessage(),
        }

        if hasattr(record, 'extra_data'):
            log_entry.update(record.extra_data)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # numpy scalars, enums and paths fall back to str
        return json.dumps(log_entry, default=str)


def setup_logging(level=logging.INFO, log_file=None):
    """Attach JSON handlers to the ``antclock`` logger and return it.

    Existing handlers are replaced, so calling this twice does not duplicate
    output. Component loggers propagate to the root ``antclock`` logger.
    """
    logger = logging.getLogger('antclock')
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = JSONFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    for comp in COMPONENTS:
        comp_logger = logging.getLogger(f'antclock.{comp}')
        comp_logger.setLevel(level)
        comp_logger.propagate = True

    return logger


class Timer:
    """Wall-clock timer for log payloads. Never feeds back into results.

    Inside the block ``elapsed_ms`` is the running time; after the block it is
    frozen at the block's duration.
    """

    def __init__(self, name=""):
        self.name = name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.end_time = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.perf_counter()
        return False

    def elapsed_ms(self):
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return (end - self.start_time) * 1000


def field_stats(arr, name=""):
    """Summary of a grid sequence for log payloads.

    min/max/mean/max_abs cover the finite entries only; ``non_finite`` counts
    the rest, so a blown-up field still yields a readable record.
    """
    arr = np.asarray(arr, dtype=np.float64)
    finite = arr[np.isfinite(arr)]
    stats = {
        "name": name,
        "size": int(arr.size),
        "non_finite": int(arr.size - finite.size),
        "min": None,
        "max": None,
        "mean": None,
        "max_abs": None,
    }
    if finite.size:
        stats.update({
            "min": float(np.min(finite)),
            "max": float(np.max(finite)),
            "mean": float(np.mean(finite)),
            "max_abs": float(np.max(np.abs(finite))),
        })
    return stats
