"""
Logging utilities for FIMO
Provides structured logging and batch render statistics
"""

import logging
import sys
from typing import Optional, Dict, Any
from datetime import datetime
import json

logger = logging.getLogger(__name__)

CONSOLE_HANDLER_NAME = "fimo-console"


class StructuredLogger:
    """Provides structured logging with metadata"""

    def __init__(self, name: str, metadata: Optional[Dict[str, Any]] = None):
        """
        Initialize structured logger

        Args:
            name: Logger name
            metadata: Default metadata to include in all logs
        """
        self.logger = logging.getLogger(name)
        self.metadata = metadata or {}

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with metadata"""
        data = {**self.metadata, **kwargs}
        if data:
            return f"{message} | {json.dumps(data, default=str)}"
        return message

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs):
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs):
        self.logger.error(self._format_message(message, **kwargs))


class RenderStats:
    """Tracks batch render statistics"""

    def __init__(self):
        self.start_time = datetime.now()
        self.total_files = 0
        self.rendered_files = 0
        self.degraded_files = 0
        self.errors = []
        self.render_times = []

    def set_total(self, total: int):
        self.total_files = total

    def add_result(self, lut_degraded: bool = False, render_time: Optional[float] = None):
        """
        Record a finished render

        Args:
            lut_degraded: The render fell back to identity colour mapping
            render_time: Seconds spent rendering
        """
        self.rendered_files += 1
        if lut_degraded:
            self.degraded_files += 1
        if render_time is not None:
            self.render_times.append(render_time)

    def add_error(self, file_path: str, error: str):
        self.errors.append({
            'file': file_path,
            'error': error,
            'time': datetime.now()
        })

    def get_elapsed_time(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()

    def get_average_render_time(self) -> float:
        if not self.render_times:
            return 0.0
        return sum(self.render_times) / len(self.render_times)

    def get_summary(self) -> Dict[str, Any]:
        """Get batch summary"""
        return {
            'total_files': self.total_files,
            'rendered_files': self.rendered_files,
            'degraded_files': self.degraded_files,
            'errors': len(self.errors),
            'elapsed_time': self.get_elapsed_time(),
            'average_time_per_file': self.get_average_render_time(),
        }

    def format_summary(self) -> str:
        """Human readable summary block"""
        summary = self.get_summary()
        lines = [
            "=" * 60,
            "RENDER SUMMARY",
            "=" * 60,
            f"Total files:      {summary['total_files']}",
            f"Rendered:         {summary['rendered_files']}",
            f"Degraded LUT:     {summary['degraded_files']}",
            f"Errors:           {summary['errors']}",
            f"Elapsed time:     {summary['elapsed_time']:.1f}s",
            f"Avg time/file:    {summary['average_time_per_file']:.2f}s",
            "=" * 60,
        ]
        for error in self.errors[:10]:  # Show first 10 errors
            lines.append(f"  - {error['file']}: {error['error']}")
        if len(self.errors) > 10:
            lines.append(f"  ... and {len(self.errors) - 10} more errors")
        return "\n".join(lines)


def setup_console_logging(level: str = "INFO", color: bool = True,
                          fmt: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'):
    """
    Setup console logging with optional color support

    Args:
        level: Logging level
        color: Whether to use colored output
        fmt: Log record format
    """
    console_handler = logging.StreamHandler(sys.stderr)

    if color and sys.stderr.isatty():
        try:
            import colorlog
            formatter = colorlog.ColoredFormatter(
                '%(log_color)s' + fmt,
                log_colors={
                    'DEBUG': 'cyan',
                    'INFO': 'green',
                    'WARNING': 'yellow',
                    'ERROR': 'red',
                    'CRITICAL': 'red,bg_white',
                }
            )
        except ImportError:
            formatter = logging.Formatter(fmt)
    else:
        formatter = logging.Formatter(fmt)

    console_handler.setFormatter(formatter)
    console_handler.set_name(CONSOLE_HANDLER_NAME)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if handler.get_name() == CONSOLE_HANDLER_NAME:
            root_logger.removeHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.addHandler(console_handler)
