class CVMatcherError(Exception):
    """Base class for errors raised by the matcher."""

    status_code = 500


class MissingInputError(CVMatcherError):
    """A required upload (job description or CVs) was not supplied."""

    status_code = 400


class UploadRejectedError(CVMatcherError):
    """An upload broke a size or count limit."""

    status_code = 400


class ExtractionError(CVMatcherError):
    """Document bytes could not be converted to text."""


class ModelInvocationError(CVMatcherError):
    """The language-model call failed (network, auth, quota, timeout)."""


class AnalysisError(CVMatcherError):
    """Client side: an analysis or search request did not produce a usable answer."""
