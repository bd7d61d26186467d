class TransportFailure(Exception):
    """Base class for failures of a single turn-generation call."""


class TransportBusy(TransportFailure):
    def __init__(self, message: str = "A turn is already in flight for this session") -> None:
        super().__init__(message)


class TransportError(TransportFailure):
    """The call failed before any response body arrived."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StreamInterrupted(TransportFailure):
    """The connection dropped while the response body was streaming."""


class BackendError(Exception):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class InvalidSessionState(Exception):
    pass
