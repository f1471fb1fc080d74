"""Render pipeline - orchestrates mesh sampling, buffer packing and frame rendering."""

from .config import RenderConfig
from .orchestrator import Pipeline

__all__ = ['RenderConfig', 'Pipeline']
