"""Error taxonomy for the push engine."""


class PushEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PushEngineError):
    """Bad or missing input supplied by the caller."""

    status_code = 400


class NotFoundError(PushEngineError):
    """A referenced entity does not exist."""

    status_code = 404


class ProviderError(PushEngineError):
    """The push provider failed at transport level for the whole operation."""

    status_code = 502

    def __init__(self, message: str, record_id: int | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class PersistenceFault(PushEngineError):
    """The store could not be reached or refused the operation."""

    status_code = 503


class StateConflict(PushEngineError):
    """A broadcast was not in the state required for the attempted transition."""

    status_code = 409
