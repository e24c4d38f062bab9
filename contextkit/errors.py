"""Exceptions raised by the compaction engine."""


class CompactionError(Exception):
    """
    Base class for compaction engine failures.
    """


class SummarizationError(CompactionError):
    """
    Exception raised when the summary provider call fails, times out or
    returns nothing usable.
    """

    def __init__(self, reason: str | None = None, session_id: str | None = None):
        self.reason = reason
        self.session_id = session_id
        message = reason or "Summarization failed"
        if session_id:
            message += f" (session_id: {session_id})"
        super().__init__(message)
