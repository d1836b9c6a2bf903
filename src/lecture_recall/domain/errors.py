"""Errors raised by the coordination services."""


class LectureRecallError(Exception):
    """Base class for errors reported to the immediate caller."""

    code = "error"


class InvalidRequestError(LectureRecallError):
    """Input failed validation; nothing was changed."""

    code = "invalid_request"


class NotFoundError(LectureRecallError):
    """A referenced session, participant or quiz does not exist."""

    code = "not_found"


class ConflictError(LectureRecallError):
    """The request conflicts with existing state."""

    code = "conflict"


class DuplicateAnswerError(ConflictError):
    """The participant already answered this quiz."""


class ForbiddenError(LectureRecallError):
    """The connection may not act on this session or participant."""

    code = "forbidden"


class StorageError(LectureRecallError):
    """A write to the session store failed."""

    code = "storage_error"


class EnrichmentUnavailableError(LectureRecallError):
    """The content enricher produced no result for an explicit request."""

    code = "enrichment_unavailable"


class JoinCodeTakenError(ConflictError):
    """Another open session claimed the join code first."""
