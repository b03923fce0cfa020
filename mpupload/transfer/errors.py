from __future__ import annotations


class InvalidSessionStateError(RuntimeError):
    """Raised when an operation is not allowed in the current session state.

    This is a programming error: starting a session twice, adding parts to or
    finalizing a session that is not active, recording an outcome for a part
    that is unknown or already resolved, or committing an upload with failed
    parts.
    """


class UploadNotFoundError(ValueError):
    """Raised when a resumed upload id matches no in-progress upload."""
