from __future__ import annotations


class PipelineError(Exception):
    """
    Base class for every failure the pipeline maps to a status message.
    """


class ValidationError(PipelineError):
    """
    Submission rejected before a job is created. The message is user-facing.
    """


class FetchError(PipelineError):
    pass


class GenerationError(PipelineError):
    pass


class DeliveryError(PipelineError):
    pass


class CleanupError(PipelineError):
    """
    Temporary artifacts could not be removed. Logged, never escalated.
    """
