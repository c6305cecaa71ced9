# ==================================== EXCEPTIONS ==================================== #

class WorkflowError(Exception):
    """Base class for errors raised by the workflow."""


class InputValidationError(WorkflowError, ValueError):
    """Malformed or misaligned input tables (identifier mismatch, non-numeric
    abundance values, empty tables) or an invalid configuration value."""


class JoinError(WorkflowError, ValueError):
    """Joining per-sample results with metadata left orphaned rows."""


class FilterExhaustionError(WorkflowError, ValueError):
    """A filtering step removed every feature or sample."""


class InsufficientSamplesError(WorkflowError, ValueError):
    """Too few samples remain for an analysis, or a model leaves no residual
    degrees of freedom."""


class ModelFitError(WorkflowError):
    """A per-feature model could not be fitted."""

    def __init__(self, feature: str, reason: str):
        self.feature = feature
        self.reason = reason
        super().__init__(f"Model fit failed for feature '{feature}': {reason}")


class WorkflowIOError(WorkflowError, OSError):
    """Reading or writing an input, snapshot or output artifact failed."""
