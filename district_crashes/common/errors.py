"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that should halt in strict mode."""

    error_code = "STAGE_ERROR"


class BoundaryResolutionError(PipelineError):
    """Raised when a district boundary source cannot be loaded. Fatal to the run."""

    error_code = "BOUNDARY_RESOLUTION_ERROR"


class CorridorResolutionError(StageError):
    """Raised when corridor lines cannot be fetched. Fatal to one corridor analysis."""

    error_code = "CORRIDOR_RESOLUTION_ERROR"


class FrameMismatchError(PipelineError):
    """Raised when two geometry collections are compared across reference frames."""

    error_code = "FRAME_MISMATCH"
