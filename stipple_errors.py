"""
Exception hierarchy for the stippling simulation
"""


class StippleError(Exception):
    """Base class for all simulation errors."""


class ConfigError(StippleError, ValueError):
    """Invalid configuration, reported before any simulation work starts."""


class FieldChargeError(ConfigError):
    """Total raw field charge is zero, negative or not finite (cannot normalize)."""


class ResourceError(StippleError):
    """Input image or buffer could not be read or allocated."""


class MissingFrameError(ResourceError, FileNotFoundError):
    """A required input frame does not exist on disk."""
