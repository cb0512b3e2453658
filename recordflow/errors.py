# ==============================================
# Error Taxonomy
# ==============================================
#
# Every error raised by the framework derives from RecordflowError so a
# caller can catch "anything the pipeline raised" in one place.
#
#   ConfigurationError   → missing/invalid configuration, raised before
#                          any write is attempted
#   SinkConnectionError  → sink or source unreachable / unauthenticated
#   SourceError          → bad data coming out of a source
#   SchemaConflictError  → a type conflict with no deconfliction answer
#   WriteError           → a sink writer failed; the run is aborted
#   CommitError          → records were written but the commit/state step
#                          failed; needs operator cleanup + full re-run
#
# ==============================================


class RecordflowError(Exception):
    """Base class for every error raised by recordflow."""


class ConfigurationError(RecordflowError):
    """A required configuration value is missing or invalid."""


class SinkConnectionError(RecordflowError):
    """A sink or source could not be reached or rejected the credentials."""


class SourceError(RecordflowError):
    """A source produced data the pipeline cannot process."""


class SchemaConflictError(RecordflowError):
    """A property has conflicting value types and no resolution was chosen."""


class WriteError(RecordflowError):
    """A sink writer failed while durably writing records."""


class CommitError(RecordflowError):
    """
    Records were written, but committing them (or saving the sink state)
    failed. The destination and the stored state are now out of step.
    """

    REMEDY = (
        "Delete the data written by this run from the destination and "
        "re-run the full transfer."
    )

    def __init__(self, message: str):
        super().__init__(f"{message} {self.REMEDY}")
