"""
FIMO: vintage camera render engine

Turns a captured photo and a named filter preset into a stylized image:
colour graded, grained, vignetted, optionally framed and date stamped.
Rendering is deterministic for a given seed.
"""

__version__ = "0.1.0"

from .config import load_config
from .errors import (
    FimoError, UnknownPresetError, SourceDecodeError, LUTLoadError, ContextUnavailableError,
)
from .presets import FilterPreset, PRESETS, preset_for, list_presets
from .render import Renderer, RenderRequest, RenderResult, RenderState

__all__ = [
    "load_config",
    "FimoError",
    "UnknownPresetError",
    "SourceDecodeError",
    "LUTLoadError",
    "ContextUnavailableError",
    "FilterPreset",
    "PRESETS",
    "preset_for",
    "list_presets",
    "Renderer",
    "RenderRequest",
    "RenderResult",
    "RenderState",
]
