"""
Logging setup and progress reporting on top of loguru.

Library modules log through `from loguru import logger` and never touch sinks.
Entry points (actions, main.py) call `configure_logging()` once to install
the stderr sink and, optionally, a rotating file sink.
"""

import os
import sys
from time import perf_counter
from typing import Callable, Optional

from loguru import logger

from xau_backtester.config.settings import LoggingSettings


_LOGGER_CONFIGURED = False


def configure_logging(settings: Optional[LoggingSettings] = None, force: bool = False) -> None:
    """
    Configure global loguru sinks, once per process.

    Args:
        settings: Logging settings; defaults to `LoggingSettings()`.
        force: Reconfigure even if logging was already configured.
    """
    global _LOGGER_CONFIGURED

    if _LOGGER_CONFIGURED and not force:
        return

    settings = settings or LoggingSettings()

    logger.remove()
    logger.add(
        sink=sys.stderr,
        level=settings.level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}",
    )

    if settings.to_file:
        os.makedirs(settings.log_dir, exist_ok=True)
        logger.add(
            sink=f"{settings.log_dir}/{{time:YYYY-MM-DD}}.log",
            rotation=settings.rotation,
            retention=settings.retention,
            level=settings.level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
            backtrace=True,
            diagnose=False,
        )

    _LOGGER_CONFIGURED = True
    logger.debug("Logger initialized (level={})", settings.level)


class ProgressReporter:
    """
    Lightweight progress logger for long optimization and simulation loops.

    Logs start, throttled progress lines with elapsed time and ETA, and a
    completion line. `as_callback()` adapts it to the fractional progress
    callbacks of the optimizers and the Monte Carlo simulator.

    Example:
        reporter = ProgressReporter("Grid search", total=optimizer.total_combinations())
        optimizer = GridSearchOptimizer(..., on_progress=reporter.as_callback())
    """

    def __init__(self, task: str, total: int, unit: str = "runs", every: float = 0.1):
        self.task = task
        self.total = int(total)
        self.unit = unit
        self.every = every
        self.start = perf_counter()
        self._last_logged = -1.0

        logger.info("[{}] START total={} {}", self.task, self.total, self.unit)

    def update(self, fraction: float) -> None:
        """Record progress as a fraction in [0, 1]; logs at most every `every`."""
        if fraction < 1.0 and fraction - self._last_logged < self.every:
            return
        self._last_logged = fraction

        elapsed = perf_counter() - self.start
        eta = (elapsed / fraction) * (1.0 - fraction) if fraction > 0 else 0.0
        done = int(round(fraction * self.total))
        logger.info(
            "[Progress] {}: {}/{} {} ({:.0%}) | elapsed={:.2f}s | ETA={:.2f}s",
            self.task, done, self.total, self.unit, fraction, elapsed, eta,
        )

    def finish(self) -> None:
        elapsed = perf_counter() - self.start
        logger.info("[{}] DONE total_time={:.2f}s", self.task, elapsed)

    def as_callback(self) -> Callable[..., None]:
        """Return a callback accepting `(fraction, *extra)` and forwarding the fraction."""
        def callback(fraction: float, *args) -> None:
            self.update(fraction)

        return callback
