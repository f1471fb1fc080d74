"""Shared helpers for the splat renderer."""

from .logging_utils import setup_logging, Timer, TimingStats, format_duration, format_rate

__all__ = ['setup_logging', 'Timer', 'TimingStats', 'format_duration', 'format_rate']
