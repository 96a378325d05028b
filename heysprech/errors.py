"""Failure taxonomy for the processing pipeline.

Every error carries the pipeline stage it was raised in (when known) so the
ledger can write a readable trail. ``retryable`` tells the queue whether an
automatic re-attempt makes sense; only engine and infrastructure failures do.
"""


class PipelineError(Exception):
    retryable = False

    def __init__(self, message, stage=None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self):
        return self.message


class ValidationError(PipelineError):
    """Bad input rejected before enqueue or before the engine is launched."""


class FileNotFound(ValidationError):
    pass


class InvalidLocation(ValidationError):
    pass


class UnsupportedLanguage(ValidationError):
    pass


class InvalidTransition(ValidationError):
    pass


class NotFound(ValidationError):
    pass


class OverlapError(ValidationError):
    pass


class BoundsError(ValidationError):
    pass


class SubprocessError(PipelineError):
    retryable = True


class EngineFailed(SubprocessError):
    def __init__(self, message, stage=None, returncode=None, stderr=None):
        super().__init__(message, stage=stage)
        self.returncode = returncode
        self.stderr = stderr


class EngineTimeout(SubprocessError):
    pass


class EngineSpawnError(SubprocessError):
    pass


class TranscriptImportError(PipelineError):
    """The engine output could not be imported; needs a human to look at it."""


class MalformedOutput(TranscriptImportError):
    pass


class ImportConstraintError(TranscriptImportError):
    """Overlap or bounds violation found while importing engine output."""


class InfrastructureError(PipelineError):
    retryable = True


class EngineUnavailable(InfrastructureError):
    pass


def is_retryable(exc):
    if isinstance(exc, PipelineError):
        return exc.retryable
    # unknown errors (db connection drops, OS errors) get the queue's retry budget
    return True
