"""Exception types raised by the progress tracker."""


class WordSyncError(Exception):
    """Base class for all tracker errors."""


class InvariantViolation(WordSyncError):
    """A progress record breaks one of its data invariants."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class UsageError(WordSyncError):
    """The caller violated an operation's contract."""


class EmptyQueueError(UsageError):
    """A practice session was started without items."""


class SessionEndedError(UsageError):
    """An operation was attempted on a finished practice session."""


class NothingSubmittedError(UsageError):
    """A practice session was advanced before a sentence was evaluated."""


class OfflineError(UsageError):
    """A sync was requested while the connectivity probe reports offline."""


class SyncInProgressError(UsageError):
    """A sync was requested while another sync is still running."""
