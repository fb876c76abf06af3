"""Tests for the logger façade and its sinks."""

import io
import logging
from unittest.mock import Mock

import pytest
from rich.console import Console

from climbrl.utils.logger import ConsoleSink, Logger, LoggingSink, LogSink


@pytest.mark.unit
class TestLogger:
    def test_fans_out_to_sinks(self):
        sinks = [Mock(spec=LogSink), Mock(spec=LogSink)]
        logger = Logger(sinks)
        logger.start({"algorithm": "dqn"})
        logger.log_metrics("train", {"train/reward": 1.0}, step=3)
        logger.warning("checkpoint save failed", extra={"error": "disk full"})
        logger.stop()

        for sink in sinks:
            sink.start.assert_called_once_with({"algorithm": "dqn"})
            sink.log_metrics.assert_called_once_with("train", {"train/reward": 1.0}, step=3)
            sink.log_event.assert_called_once_with("warn", "checkpoint save failed", {"error": "disk full"})
            sink.stop.assert_called_once()

    def test_start_and_stop_are_idempotent(self):
        sink = Mock(spec=LogSink)
        logger = Logger([sink])
        logger.start()
        logger.start()
        logger.stop()
        logger.stop()
        assert sink.start.call_count == 1
        assert sink.stop.call_count == 1

    def test_empty_metrics_are_dropped(self):
        sink = Mock(spec=LogSink)
        Logger([sink]).log_metrics("train", {})
        sink.log_metrics.assert_not_called()


@pytest.mark.unit
class TestLoggingSink:
    def test_formats_metrics(self, caplog):
        sink = LoggingSink("climbrl.test")
        with caplog.at_level(logging.INFO, logger="climbrl.test"):
            sink.log_metrics("train", {"train/reward": 1.23456, "train/termination_reason": "fallen"}, step=1)
        assert "[train]" in caplog.text
        assert "reward=1.235" in caplog.text
        assert "termination_reason=fallen" in caplog.text

    def test_every_skips_steps(self, caplog):
        sink = LoggingSink("climbrl.test", every=5)
        with caplog.at_level(logging.INFO, logger="climbrl.test"):
            sink.log_metrics("train", {"train/reward": 1.0}, step=3)
            sink.log_metrics("train", {"train/reward": 2.0}, step=5)
        assert caplog.text.count("[train]") == 1

    def test_warning_level(self, caplog):
        sink = LoggingSink("climbrl.test")
        with caplog.at_level(logging.INFO, logger="climbrl.test"):
            sink.log_event("warn", "slow", {"ms": 12})
        assert caplog.records[-1].levelno == logging.WARNING
        assert "slow (ms=12)" in caplog.text


@pytest.mark.unit
class TestConsoleSink:
    def test_render_cycle(self):
        buffer = io.StringIO()
        sink = ConsoleSink(console=Console(file=buffer, force_terminal=False, width=100))
        sink.start({"algorithm": "ppo"})
        sink.log_metrics("train", {"train/episode": 1, "train/reward": -3.5, "train/policy_loss": float("nan")}, step=1)
        sink.log_event("info", "checkpoint saved")
        sink.stop()
        assert "checkpoint saved" in buffer.getvalue()
