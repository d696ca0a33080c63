"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration or credentials."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for job failures that should stop the run."""

    error_code = "STAGE_ERROR"


class SourceError(PipelineError):
    """Raised when a source file cannot be read."""

    error_code = "SOURCE_ERROR"


class PersistenceError(PipelineError):
    """Raised when a record cannot be written."""

    error_code = "PERSISTENCE_ERROR"


class RetryLaterError(PipelineError):
    """Raised for transient record failures; the driver backs off, then defers."""

    error_code = "RETRY_LATER"


class RateLimitedError(RetryLaterError):
    """Raised when the places API reports an exhausted quota."""

    error_code = "RATE_LIMITED"


class LookupUnavailableError(RetryLaterError):
    """Raised when the places API could not be reached for a record."""

    error_code = "NETWORK_ERROR"


class DeferredRecordError(PipelineError):
    """Raised to stop the run before the record so the next run starts with it."""

    error_code = "DEFERRED"


class FatalPipelineError(PipelineError):
    """Raised when a run cannot continue at all, e.g. the database went away."""

    error_code = "FATAL_ERROR"


class DatabaseUnavailableError(FatalPipelineError):
    """Raised when the database connection is lost mid-run."""

    error_code = "DATABASE_UNAVAILABLE"
