"""
Logging utilities for the splat renderer.

Provides the package logger, stage timers that report throughput
(splats/s, frames/s) and the timing tree printed after a pipeline run.
"""

import logging
import time
from pathlib import Path
from typing import Optional, List, Union
from dataclasses import dataclass, field

LOGGER_NAME = 'splat_renderer'

CONSOLE_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
FILE_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'


def setup_logging(verbose: bool = False, quiet: bool = False,
                  log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Configure the splat_renderer logger.

    Args:
        verbose: Enable DEBUG level on the console
        quiet: Only show WARNING and above on the console (wins over verbose)
        log_file: Optional path that receives every record at DEBUG level

    Returns:
        Configured logger
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)
        level = logging.DEBUG

    logger.setLevel(level)
    logger.propagate = False
    return logger


def format_duration(seconds: float) -> str:
    """Milliseconds below one second, otherwise seconds."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.1f}s"


def format_rate(items: int, seconds: float, unit: str) -> str:
    """Throughput such as '52,000 splats/s'; empty when nothing was counted."""
    if items <= 0 or seconds <= 0:
        return ""
    return f"{items / seconds:,.0f} {unit}/s"


class Timer:
    """
    Context manager that times a stage and logs its duration.

    When the block reports how many items it processed (through `items` or
    `count()`), the completion message also carries the throughput.
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None,
                 items: int = 0, unit: str = 'items'):
        self.name = name
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.items = items
        self.unit = unit
        self.start_time = None
        self.elapsed = None

    def count(self, n: int = 1):
        """Record n more processed items."""
        self.items += n

    @property
    def rate(self) -> float:
        """Items per second, 0 before the block finishes."""
        if not self.elapsed or self.items <= 0:
            return 0.0
        return self.items / self.elapsed

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.info("[TIMER] %s started...", self.name)
        return self

    def __exit__(self, *args):
        self.elapsed = time.perf_counter() - self.start_time
        rate = format_rate(self.items, self.elapsed, self.unit)
        if rate:
            self.logger.info("[OK] %s complete in %.2fs (%s)", self.name, self.elapsed, rate)
        else:
            self.logger.info("[OK] %s complete in %.2fs", self.name, self.elapsed)

    def to_stats(self) -> 'TimingStats':
        """Snapshot of this timer for the pipeline summary."""
        return TimingStats(self.name, self.elapsed or 0.0, items=self.items, unit=self.unit)


@dataclass
class TimingStats:
    """Timing of one pipeline stage, with optional per-item breakdown."""

    name: str
    elapsed: float
    items: int = 0
    unit: str = ''
    substeps: List['TimingStats'] = field(default_factory=list)

    def add_substep(self, name: str, elapsed: float, items: int = 0, unit: str = ''):
        self.substeps.append(TimingStats(name, elapsed, items=items, unit=unit))

    def get_percentage(self, total: float) -> float:
        return (self.elapsed / total * 100) if total > 0 else 0

    def slowest_substep(self) -> Optional['TimingStats']:
        return max(self.substeps, key=lambda s: s.elapsed, default=None)

    def format_tree(self, total_time: float, indent: int = 0) -> str:
        """
        Render as aligned lines, one per stage and substep:

            Frame rendering ............................     2.0s ( 50.0%)  60 frames/s
              Frame 0 ..................................    500ms ( 12.5%)
        """
        lines = []
        prefix = "  " * indent
        dots = "." * max(1, 50 - len(prefix) - len(self.name))
        line = (f"{prefix}{self.name} {dots} {format_duration(self.elapsed):>8} "
                f"({self.get_percentage(total_time):>5.1f}%)")

        rate = format_rate(self.items, self.elapsed, self.unit)
        if rate:
            line += f"  {rate}"
        lines.append(line)

        for substep in self.substeps:
            lines.extend(substep.format_tree(total_time, indent + 1).split('\n'))

        return '\n'.join(lines)
