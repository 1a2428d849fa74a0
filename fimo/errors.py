"""
Exception hierarchy for the FIMO render engine
"""


class FimoError(Exception):
    """Base exception for render engine failures."""
    pass


class UnknownPresetError(FimoError, KeyError):
    """Raised when a preset id is not in the catalog."""

    def __init__(self, preset_id: str):
        self.preset_id = preset_id
        super().__init__(f"Unknown preset: {preset_id!r}")

    def __str__(self) -> str:
        return self.args[0]


class SourceDecodeError(FimoError):
    """Raised when the source image cannot be decoded."""
    pass


class LUTLoadError(FimoError):
    """Raised when a LUT resource is unreachable or malformed."""

    def __init__(self, reference: str, reason: str):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Could not load LUT {reference}: {reason}")


class ContextUnavailableError(FimoError):
    """Raised when the output raster cannot be created or sized."""
    pass
