"""Tests for structured JSON logging."""

import json
import logging

import numpy as np
import pytest

from antclock.logging_config import JSONFormatter, Timer, field_stats, setup_logging


def make_record(msg, extra_data=None):
    record = logging.LogRecord('antclock.scheduler', logging.INFO, __file__, 1, msg, None, None)
    if extra_data is not None:
        record.extra_data = extra_data
    return record


def test_formatter_emits_json_with_extra_fields():
    out = JSONFormatter().format(make_record("Step accepted", {"step": 3, "dt": 0.01}))
    entry = json.loads(out)
    assert entry["message"] == "Step accepted"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "antclock.scheduler"
    assert entry["step"] == 3
    assert entry["dt"] == 0.01


def test_formatter_handles_numpy_and_enum_values():
    from antclock.core.scheduler import RunStatus
    out = JSONFormatter().format(make_record("done", {"status": RunStatus.OK,
                                                      "value": np.float64(1.5)}))
    entry = json.loads(out)
    assert entry["status"] == "ok"
    assert entry["value"] == 1.5


def test_setup_logging_writes_file(tmp_path):
    log_file = tmp_path / "run.jsonl"
    logger = setup_logging(level=logging.DEBUG, log_file=str(log_file))
    try:
        logging.getLogger('antclock.scheduler').info(
            "Regime change", extra={"extra_data": {"tags": ["entropy_burst"]}})
        for handler in logger.handlers:
            handler.flush()
        lines = log_file.read_text().strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry["message"] == "Regime change"
        assert entry["tags"] == ["entropy_burst"]
        assert len(logger.handlers) == 2
    finally:
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)


def test_timer_freezes_on_exit():
    timer = Timer("x")
    assert timer.elapsed_ms() == 0.0
    with timer:
        running = timer.elapsed_ms()
    assert running >= 0.0
    frozen = timer.elapsed_ms()
    assert frozen >= running
    assert timer.elapsed_ms() == frozen


def test_timer_does_not_swallow_errors():
    with pytest.raises(KeyError):
        with Timer("x"):
            raise KeyError("boom")


def test_field_stats():
    stats = field_stats(np.array([1.0, -4.0, 3.0]), "psi")
    assert stats == {"name": "psi", "size": 3, "non_finite": 0, "min": -4.0,
                     "max": 3.0, "mean": 0.0, "max_abs": 4.0}


def test_field_stats_of_blown_up_field():
    stats = field_stats(np.array([np.nan, 2.0, np.inf]), "rho")
    assert stats["non_finite"] == 2
    assert stats["max_abs"] == 2.0
    empty = field_stats(np.array([np.nan]))
    assert empty["min"] is None and empty["mean"] is None


def test_formatter_tags_component():
    entry = json.loads(JSONFormatter().format(make_record("x")))
    assert entry["component"] == "scheduler"
    assert entry["timestamp"].endswith("+00:00")
