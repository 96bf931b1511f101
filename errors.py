"""
Exception hierarchy for the card synthesizer.

Every failure raised by the pipeline derives from CardSynthError so the
command line entry point can report it and exit with a non-zero status.
"""


class CardSynthError(Exception):
    """Base class for all card synthesizer errors."""


class ConfigError(CardSynthError):
    """A required option is missing or invalid."""


class FilesystemError(CardSynthError):
    """A directory or file could not be read or written."""


class AssetLoadError(CardSynthError):
    """The clip shape template is missing or unreadable. Fatal."""


class ImageStageError(CardSynthError):
    """Malformed or incompatible image data at a pipeline stage."""


class ClipError(ImageStageError):
    """Source card could not be decoded or clipped."""


class TransformError(ImageStageError):
    """Camera transform could not decode its input."""


class SynthesisError(ImageStageError):
    """Noisy background canvas could not be created."""


class CompositeError(ImageStageError):
    """Foreground and background could not be merged."""
