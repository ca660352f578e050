# Error taxonomy for duplicate search and patient merge
# Operations raise these; main.py converts them to HTTP errors at the endpoint boundary.


class DuplicateServiceError(Exception):
    """Base for all duplicate search / merge errors."""


class InvalidSearchQuery(DuplicateServiceError):
    """Search fragment too short (fewer than 2 characters after trimming)."""


class SearchFailure(DuplicateServiceError):
    """Candidate fetch from the store failed. Transient, user may retry."""


class InvalidMergeRequest(DuplicateServiceError):
    """Group has fewer than 2 members, or primary is not one of them."""


class MergeWriteFailure(DuplicateServiceError):
    """Batched identity rewrite failed. Treated as all-or-nothing by callers."""


class InvalidTransition(DuplicateServiceError):
    """Workflow step requested from a state that does not allow it."""
