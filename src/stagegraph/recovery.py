class StageGraphError(Exception):
    """Base exception for all stagegraph errors."""
    pass

class RecoverableError(StageGraphError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(StageGraphError):
    """An error that requires application termination or major intervention."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to broken stage references"""
    pass

class ViewStateError(FatalError):
    """A graph view operation was issued in a state that does not allow it."""
    pass

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    pass

class DisallowedOperationError(RecoverableError):
    """ The operation is understood but not permitted; the user must be told """
    pass

class RootStageDeletionError(DisallowedOperationError):
    """The root stage of a task can never be deleted."""

    def __init__(self, task_id: str = None):
        self.task_id = task_id
        super().__init__("The root stage cannot be deleted")

class InvalidLicenseError(RecoverableError):
    """ License file is missing or invalid; blocks loading, saving and graph views """
    pass
