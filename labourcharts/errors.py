"""Pipeline-level errors.

Row-level problems never raise: invalid rows are dropped and counted by the
validator. Everything below is terminal for the chart that raised it.
"""


class PipelineError(RuntimeError):
    """Base class for errors that put a chart into the error state."""


class FetchError(PipelineError):
    """The source file could not be fetched (HTTP status, network or disk)."""


class EmptyFileError(PipelineError, ValueError):
    """The file has no data rows below its header."""


class StructureError(PipelineError, ValueError):
    """Expected columns are missing from an otherwise readable file."""


class NoValidDataError(PipelineError, ValueError):
    """Every data row was rejected during validation."""
