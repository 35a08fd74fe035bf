"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for failures inside a single unit of work."""

    error_code = "STAGE_ERROR"


class InputSourceError(PipelineError):
    """Raised when the registry input cannot be read. Fatal for the run."""

    error_code = "INPUT_ERROR"


class OutputSinkError(PipelineError):
    """Raised when an output stream cannot be opened or written. Fatal for the run."""

    error_code = "OUTPUT_ERROR"
