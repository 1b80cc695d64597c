"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class InputError(PipelineError):
    """Raised when a district is missing, inactive or has no boundary."""

    error_code = "INPUT_ERROR"


class GeometryError(PipelineError):
    """Raised for degenerate, empty or self-intersecting geometry."""

    error_code = "GEOMETRY_ERROR"


class SourceError(PipelineError):
    """Raised when the upstream segment source cannot be read."""

    error_code = "SOURCE_ERROR"


class ComputeError(PipelineError):
    """Raised for unexpected failures while clustering or aggregating."""

    error_code = "COMPUTE_ERROR"


class RefreshTimeoutError(ComputeError):
    """Raised when a district refresh runs past its deadline."""

    error_code = "REFRESH_TIMEOUT"


class ConcurrentRefreshError(ComputeError):
    """Raised when another refresh committed the district first."""

    error_code = "CONCURRENT_REFRESH"


class LogError(PipelineError):
    """Raised when a refresh log entry cannot be written."""

    error_code = "LOG_ERROR"


class StoreError(PipelineError):
    """Raised when the backing store is unreachable. Aborts a batch."""

    error_code = "INFRASTRUCTURE_ERROR"


class StateTransitionError(PipelineError):
    """Raised for a refresh state change the state machine does not allow."""

    error_code = "STATE_ERROR"
