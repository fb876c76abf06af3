"""Metric and event logging for training runs.

:class:`Logger` fans calls out to sinks. :class:`LoggingSink` writes one line
per metrics call to stdlib logging; :class:`ConsoleSink` keeps a live ``rich``
dashboard of the latest episode.
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, Mapping, Optional, Sequence

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


class LogSink(ABC):
    """Destination for run metrics and events."""

    @abstractmethod
    def start(self, context: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def log_metrics(self, phase: str, metrics: Mapping[str, Any], *, step: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def log_event(self, level: str, message: str, extra: Optional[Mapping[str, Any]] = None) -> None:
        """``level`` is one of ``debug``, ``info``, ``warn`` or ``error``."""


class Logger:
    """Fans metrics and events out to every sink; start/stop are idempotent."""

    def __init__(self, sinks: Optional[Iterable[LogSink]] = None) -> None:
        self._sinks: Sequence[LogSink] = tuple(sinks or ())
        self._context: Dict[str, Any] = {}
        self._active = False

    @property
    def sinks(self) -> Sequence[LogSink]:
        return self._sinks

    def start(self, context: Optional[Mapping[str, Any]] = None) -> None:
        self._context.update(context or {})
        if self._active:
            return
        self._active = True
        for sink in self._sinks:
            sink.start(dict(self._context))

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        for sink in reversed(self._sinks):
            sink.stop()

    def log_metrics(self, phase: str, metrics: Mapping[str, Any], *, step: Optional[float] = None) -> None:
        if metrics:
            for sink in self._sinks:
                sink.log_metrics(phase, metrics, step=step)

    def log_event(self, level: str, message: str, *, extra: Optional[Mapping[str, Any]] = None) -> None:
        for sink in self._sinks:
            sink.log_event(level, message, extra)

    def info(self, message: str, *, extra: Optional[Mapping[str, Any]] = None) -> None:
        self.log_event("info", message, extra=extra)

    def warning(self, message: str, *, extra: Optional[Mapping[str, Any]] = None) -> None:
        self.log_event("warn", message, extra=extra)


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _strip_phase(phase: str, key: str) -> str:
    prefix = f"{phase}/"
    return key[len(prefix):] if key.startswith(prefix) else key


def _describe(message: str, extra: Optional[Mapping[str, Any]]) -> str:
    if not extra:
        return message
    return f"{message} ({', '.join(f'{key}={extra[key]}' for key in sorted(extra))})"


class LoggingSink(LogSink):
    _LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}

    def __init__(self, name: str = "climbrl.metrics", *, every: int = 1) -> None:
        self._logger = logging.getLogger(name)
        self._every = max(int(every), 1)

    def start(self, context: Mapping[str, Any]) -> None:
        if context:
            self._logger.info("run context: %s", ", ".join(f"{k}={context[k]}" for k in sorted(context)))

    def stop(self) -> None:
        pass

    def log_metrics(self, phase: str, metrics: Mapping[str, Any], *, step: Optional[float] = None) -> None:
        if step is not None and int(step) % self._every != 0:
            return
        parts = []
        for key in sorted(metrics):
            number = _as_float(metrics[key])
            shown = f"{number:.4g}" if number is not None else metrics[key]
            parts.append(f"{_strip_phase(phase, key)}={shown}")
        self._logger.info("[%s] %s", phase, " ".join(parts))

    def log_event(self, level: str, message: str, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._logger.log(self._LEVELS.get(level.lower(), logging.INFO), _describe(message, extra))


class ConsoleSink(LogSink):
    """Live ``rich`` panel with the latest value of each tracked metric and recent events."""

    _ROWS = (
        ("episode", "Episode"),
        ("reward", "Reward"),
        ("steps", "Steps"),
        ("highest_zone", "Highest zone"),
        ("average_reward", "Avg reward"),
        ("success_rate", "Success rate"),
        ("exploration_rate", "Epsilon"),
        ("loss", "Loss"),
        ("policy_loss", "Policy loss"),
        ("value_loss", "Value loss"),
        ("entropy", "Entropy"),
        ("termination_reason", "Ended by"),
    )

    def __init__(
        self,
        *,
        refresh_per_second: float = 4.0,
        event_history: int = 5,
        console: Optional[Console] = None,
    ) -> None:
        self._refresh_rate = refresh_per_second
        self._console = console or Console()
        self._live: Optional[Live] = None
        self._title = "climbrl"
        self._latest: Dict[str, Dict[str, Any]] = {}
        self._events: Deque[str] = deque(maxlen=int(event_history))

    def start(self, context: Mapping[str, Any]) -> None:
        self._title = str(context.get("algorithm", self._title)).upper()
        if self._live is None:
            self._live = Live(self._render(), console=self._console, refresh_per_second=self._refresh_rate, auto_refresh=False)
            self._live.start()
        self._redraw()

    def stop(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None
        self._latest.clear()
        self._events.clear()

    def log_metrics(self, phase: str, metrics: Mapping[str, Any], *, step: Optional[float] = None) -> None:
        latest = self._latest.setdefault(phase, {})
        latest.update({_strip_phase(phase, key): value for key, value in metrics.items()})
        self._redraw()

    def log_event(self, level: str, message: str, extra: Optional[Mapping[str, Any]] = None) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        self._events.append(f"[{stamp}] {level.upper()} {_describe(message, extra)}")
        self._redraw()

    def _redraw(self) -> None:
        if self._live is not None:
            self._live.update(self._render(), refresh=True)

    def _render(self) -> Group:
        panels = [self._metrics_panel(phase, values) for phase, values in self._latest.items() if values]
        if self._events:
            panels.append(Panel(Text("\n".join(self._events)), title="Events"))
        return Group(*(panels or [Panel("Waiting for the first episode", title=self._title)]))

    def _metrics_panel(self, phase: str, values: Mapping[str, Any]) -> Panel:
        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column("metric", style="cyan")
        table.add_column("value", style="yellow")
        for key, label in self._ROWS:
            value = values.get(key)
            if value is None:
                continue
            number = _as_float(value)
            if number is None or isinstance(value, int):
                shown = str(value)
            elif key == "success_rate":
                shown = f"{number:.1%}"
            else:
                shown = f"{number:.3f}"
            table.add_row(label, shown)
        return Panel(table, title=f"{self._title} {phase}")


__all__ = ["ConsoleSink", "LogSink", "Logger", "LoggingSink"]
