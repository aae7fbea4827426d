"""Error taxonomy for logrelay.

Usage errors:
    NotInitializedError      — facade used before initialize()
    AlreadyInitializedError  — initialize() called twice

Initialization errors:
    StoreUnavailableError    — the log store could not be opened

Transient operational errors (logged inside the poll cycle, never raised to
callers of start_polling/stop_polling):
    StoreQueryError          — a query against the log store failed
    CheckpointStoreError     — the checkpoint could not be read or written
"""

from __future__ import annotations


class LogRelayError(Exception):
    """Base error: a human-readable reason plus a suggested remediation."""

    default_suggestion = "Review the underlying error and try again."

    def __init__(self, reason: str, recovery_suggestion: str | None = None) -> None:
        self.reason = reason
        self.recovery_suggestion = recovery_suggestion or self.default_suggestion
        super().__init__(reason)

    def __str__(self) -> str:
        return f"{self.reason} ({self.recovery_suggestion})"


class NotInitializedError(LogRelayError):
    """The process-wide client was used before initialize().

    This is a contract violation. It is raised rather than silently ignored
    so integration mistakes surface immediately.
    """

    def __init__(self) -> None:
        super().__init__(
            "logrelay client not initialized",
            "Call logrelay.initialize() once at startup before using the client.",
        )


class AlreadyInitializedError(LogRelayError):
    def __init__(self) -> None:
        super().__init__(
            "logrelay client has already been initialized",
            "Use logrelay.get_client() to reach the existing client, "
            "or call logrelay.reset() first.",
        )


class StoreUnavailableError(LogRelayError):
    """The log store could not be opened at construction time."""

    def __init__(self, reason: str, recovery_suggestion: str | None = None) -> None:
        super().__init__(f"log store failed to resolve: {reason}", recovery_suggestion)


class StoreQueryError(LogRelayError):
    """A single query against the log store failed."""


class CheckpointStoreError(LogRelayError):
    """The checkpoint store could not be read or written."""
