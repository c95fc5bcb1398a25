class MissingInputError(ValueError):
    """Raised when a required input (candidate, schedule, roster entry) is missing."""

    pass


class LockedAssignmentError(Exception):
    """Raised when a locked assignment would be removed without unlocking it first."""

    pass


class ScheduleBusyError(Exception):
    """Raised when a manual schedule edit is attempted while an engine run is active."""

    pass
