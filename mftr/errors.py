"""Error taxonomy for the rating estimation pipeline.

Fatal errors subclass MFTRError and must stop the run before anything is
persisted. Soft-quality issues are warnings: they are logged, recorded as
flags on the output, and the run continues.
"""


class MFTRError(Exception):
    """Base class for fatal rating pipeline errors."""

    pass


class InsufficientDataError(MFTRError):
    """Raised when fewer than min_games valid rows remain after filtering."""

    pass


class SingularSystemError(MFTRError):
    """Raised when the regularized normal equations cannot be solved."""

    pass


class NoValidBlendError(MFTRError):
    """Raised when every blend weight fails the secondary-set sign filter."""

    pass


class BaselineValidationError(MFTRError):
    """Raised when the primary model fails to beat the HFA-only baseline.

    Attributes:
        comparison: BaselineComparison that failed the health check
    """

    def __init__(self, message: str, comparison=None):
        super().__init__(message)
        self.comparison = comparison


class MissingPriorWarning(UserWarning):
    """A team has no prior data; its prior defaults to 0 (league average)."""

    pass


class SanityCheckFailure(UserWarning):
    """The blended rating difference has a non-positive slope on the target."""

    pass
