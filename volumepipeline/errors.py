"""
Error types raised by the volume pipeline.
"""


class PipelineError(Exception):
    """Base class for everything that can fail a volume."""


class InvalidParameter(PipelineError, ValueError):
    """A configuration value is out of range (e.g. non-positive gamma)."""


class ManifestError(PipelineError):
    """A chapter manifest could not be read or is malformed."""


class SourceFailure(PipelineError):
    """One of the page retrieval tasks failed.

    Attributes:
        source: Which retrieval task failed ('network' or 'disk')
        cause: The underlying exception
    """

    def __init__(self, source: str, cause: BaseException) -> None:
        super().__init__(f"{source}: {cause}")
        self.source = source
        self.cause = cause


class TransformFailure(PipelineError):
    """A per-page transform failed and the volume must be abandoned."""

    def __init__(self, chapter_id: str, page_id: int, cause: BaseException) -> None:
        super().__init__(f"chapter {chapter_id}: page {page_id}: {cause}")
        self.chapter_id = chapter_id
        self.page_id = page_id
        self.cause = cause


class Indeterminate(PipelineError):
    """Rotation or splitting returned no usable result for a page.

    Only raised in strict mode; otherwise the page is left unchanged.
    """

    def __init__(self, operation: str, chapter_id: str, page_id: int, reason: str) -> None:
        super().__init__(f"{operation}: chapter {chapter_id}: page {page_id}: {reason}")
        self.operation = operation
        self.chapter_id = chapter_id
        self.page_id = page_id
        self.reason = reason
