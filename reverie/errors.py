"""
Error taxonomy for the autonomy loop.

None of these are allowed to escape an iteration. Each one has a fixed
recovery path inside the loop; they exist so call sites can say which failure
they are recovering from.
"""

from __future__ import annotations


class ReverieError(Exception):
    """Base class for all reverie errors."""


class TransientStoreError(ReverieError):
    """The memory store could not be read. Treated as first-thought / miss."""


class PipelineSubmissionError(ReverieError):
    """The message pipeline raised while accepting the autonomous prompt."""

    def __init__(self, iteration_id: str, cause: BaseException) -> None:
        super().__init__(f"pipeline rejected iteration {iteration_id}: {cause}")
        self.iteration_id = iteration_id
        self.cause = cause


class PublishError(ReverieError):
    """The broadcast boundary refused or failed to accept a thought."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigDriftError(ReverieError):
    """The persisted ``enabled`` flag could not be read or interpreted."""
