"""
Error types for Mnemonic Maker.

Every failure the build pipeline or the realtime session can report is one of
these. Per-asset failures are caught inside the pipeline and turned into
outcomes; realtime and export failures are raised to the single caller.
"""

from typing import Optional


class MnemonicMakerError(Exception):
    """Base exception for Mnemonic Maker errors."""
    pass


class NetworkError(MnemonicMakerError):
    """Raised when the transport fails before a response is received."""
    pass


class RemoteServiceError(MnemonicMakerError):
    """Raised when the remote API answers with a non-success status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")


class MalformedResponseError(MnemonicMakerError):
    """Raised when a success payload does not have the expected shape."""
    pass


class Cancelled(MnemonicMakerError):
    """Raised when a cooperative cancellation signal aborts an operation."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class RealtimeServerError(MnemonicMakerError):
    """Raised when the realtime server reports an error event."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(f"Realtime server error: {message}")


class RealtimeTimeoutError(MnemonicMakerError):
    """Raised when a realtime session produces no completion event in time."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Realtime request timed out after {timeout:g}s")


class NoAudioReceived(MnemonicMakerError):
    """Raised when a realtime session completes without any audio."""

    def __init__(self):
        super().__init__("No audio received from realtime session")


class ExportError(MnemonicMakerError):
    """Raised when writing the deck file or copying media fails."""
    pass
