"""
Error Taxonomy
==============

Exceptions raised by the chroma router.

Rules:
    - ConfigurationError surfaces synchronously, before streaming starts
    - SourceUnavailable / SinkUnavailable stop the pipeline; the error is
      recorded in the pipeline status
    - MalformedFrame rejects a single frame; the tick is skipped
"""


class ChromaRouterError(Exception):
    """Base class for all chroma router errors."""
    pass


class ConfigurationError(ChromaRouterError):
    """Raised when configuration is invalid (bad band, fps, variant, color)."""
    pass


class SourceUnavailable(ChromaRouterError):
    """Raised when the capture source cannot be opened or a read fails."""
    pass


class SinkUnavailable(ChromaRouterError):
    """
    Raised when the downstream sink cannot accept writes.

    Attributes:
        written: Bytes of the payload the sink took before failing
    """

    def __init__(self, message: str = "", written: int = 0) -> None:
        super().__init__(message)
        self.written = written


class MalformedFrame(ChromaRouterError):
    """Raised when frame geometry does not match its buffer."""
    pass
