"""Exceptions raised by the feed client."""


class BlazeFeedError(Exception):
    """Base class for every error raised by this package."""


class MissingAddressError(BlazeFeedError):
    """connect() was called without a target address."""

    def __init__(self, message: str = "missing url"):
        super().__init__(message)


class TransportConnectError(BlazeFeedError):
    """The transport could not open the connection."""


class NotConnectedError(BlazeFeedError):
    """The transport has no live connection (already disconnected)."""

    def __init__(self, message: str = "missing socket"):
        super().__init__(message)


class UnknownRoomError(BlazeFeedError):
    """Delivered on the ``error`` event when a mode has no room."""

    def __init__(self, mode: str):
        self.mode = mode
        super().__init__(f"missing type of socket: {mode!r}")


class RoundAbortedError(BlazeFeedError):
    """A round could not be followed to the end (connection closed or no room for the mode)."""
