from __future__ import annotations


class NotFoundError(Exception):
    """The resource does not exist or is not owned by the requester."""


class ConflictError(Exception):
    """The resource is not in a state that allows the requested action."""


class QuotaExceededError(Exception):
    def __init__(self, message: str, *, required: int, remaining: int):
        super().__init__(message)
        self.required = required
        self.remaining = remaining
