class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class DuplicateUserError(DomainError):
    """Exception raised when attempting to create a user that already exists."""

    pass


class HistoryRecordNotFoundError(DomainError):
    """Raised when a history record is missing or owned by another user."""

    pass


class ConversationNotFoundError(DomainError):
    """Raised when a live conversation id is unknown to the caller."""

    pass
