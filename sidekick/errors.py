"""Error taxonomy for the sidekick client.

Per-line codec failures are recovered by the stream decoder. Transport
failures are turned into connection-status changes by the chat session.
Submission errors are raised synchronously before any network activity.
"""


class SidekickError(Exception):
    """Base class for all sidekick errors."""

    pass


class TransportUnreachable(SidekickError):
    """Raised when the server cannot be reached (refused, reset, timed out)."""

    pass


class ServerRejected(SidekickError):
    """Raised when the server answers with an HTTP error status.

    Attributes:
        status_code: The HTTP status returned by the server.
    """

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class CodecError(SidekickError):
    """Base class for failures decoding a single payload."""

    pass


class UndecodableLine(CodecError):
    """Raised for a line that is not valid UTF-8 JSON."""

    pass


class MalformedPayload(CodecError):
    """Raised for valid JSON that does not match the expected shape."""

    pass


class AlreadyInFlight(SidekickError):
    """Raised by submit while another request is still streaming."""

    pass


class NoModelSelected(SidekickError):
    """Raised by submit when no model has been selected."""

    pass
