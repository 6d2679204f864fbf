from __future__ import annotations


class AccessControlError(Exception):
    """An access-control operation failed.

    The message is safe to show to end users; internal detail is only logged.
    """


class InvitationError(AccessControlError):
    """An invitation could not transition from its current state."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
