"""
FIMO utilities module.
"""

from .logging import StructuredLogger, RenderStats, setup_console_logging

__all__ = [
    'StructuredLogger',
    'RenderStats',
    'setup_console_logging',
]
