"""Exceptions raised by the job pipeline at its admission and operator boundaries."""


class PipelineError(Exception):
    """Base class for pipeline errors."""
    pass


class InvalidPageTypeError(PipelineError, ValueError):
    """page_type is neither canonical nor a known alias."""
    pass


class BusinessNotFoundError(PipelineError):
    pass


class JobNotFoundError(PipelineError):
    pass


class PageNotFoundError(PipelineError):
    pass


class JobCreationError(PipelineError):
    """Page rows could not be written; the job was rolled back."""
    pass


class InvalidPageActionError(PipelineError):
    """Operator action not allowed in the page's or job's current state."""
    pass
