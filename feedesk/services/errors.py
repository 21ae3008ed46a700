"""Fee engine error taxonomy. Each error carries the HTTP status it maps to."""
from fastapi import status


class FeeError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FeeValidationError(FeeError):
    """Malformed input: negative amounts, percent above 100, splits not summing to 100."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(FeeError):
    status_code = status.HTTP_404_NOT_FOUND


class StateConflict(FeeError):
    """Business-rule violation the caller can act on."""
    status_code = status.HTTP_409_CONFLICT


class DuplicateStructure(StateConflict):
    pass


class AlreadyGenerated(StateConflict):
    pass


class AlreadyPaid(StateConflict):
    pass


class OverpaymentRejected(StateConflict):
    pass


class ZeroAmount(StateConflict):
    pass


class StructureLocked(StateConflict):
    pass


class ConcurrentUpdate(StateConflict):
    pass
