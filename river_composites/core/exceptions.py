"""
Exception hierarchy for the river composites pipeline.

An empty query or reduction is not an exception: it is reported through the
``EmptyResult`` value defined in ``models``.

Author: Diego Bengochea
"""


class RiverCompositesError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(RiverCompositesError):
    """Malformed configuration: bad date, degenerate AOI, unknown site, bad threshold."""


class PixelBudgetExceeded(ConfigurationError):
    """An export would write more pixels than the configured safety bound."""


class CollaboratorFailure(RiverCompositesError):
    """The image archive or the export sink failed after all retries."""

    def __init__(self, collaborator: str, message: str, cause: BaseException = None):
        super().__init__(f"{collaborator} failure: {message}")
        self.collaborator = collaborator
        self.cause = cause
