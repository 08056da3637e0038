"""Error taxonomy for the playground client."""

from typing import Optional


class PlaygroundError(Exception):
    """Base class for playground errors."""


class ValidationError(PlaygroundError):
    """Caller input violates a precondition (empty prompt, missing model, busy session)."""


class TransportError(PlaygroundError):
    """Upstream answered with a non-2xx status or the transport itself failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CancellationError(PlaygroundError):
    """The active request was aborted."""
