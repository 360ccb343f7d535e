"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """Raised when an artifact handed between stages breaks its column contract."""

    error_code = "CONTRACT_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that should halt in strict mode."""

    error_code = "STAGE_ERROR"


class ElevationBatchError(StageError):
    """Raised when one elevation batch cannot be resolved.

    ``batch_start``/``batch_end`` are the half-open row range of the failed
    batch so the caller can rerun just that slice.
    """

    error_code = "ELEVATION_BATCH_ERROR"

    def __init__(self, message: str, *, batch_start: int, batch_end: int) -> None:
        super().__init__(f"{message} (rows {batch_start}-{batch_end})")
        self.batch_start = batch_start
        self.batch_end = batch_end
