from __future__ import annotations

from typing import Optional


class TaskspaceError(Exception):
    """Base error carrying the HTTP status it should surface as."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(TaskspaceError):
    status_code = 404


class InvalidRequestError(TaskspaceError):
    status_code = 400


class LastWorkspaceError(TaskspaceError):
    status_code = 409

    def __init__(self, message: str = "Cannot delete the last workspace"):
        super().__init__(message)


class NoWorkspaceError(TaskspaceError):
    status_code = 409

    def __init__(self, message: str = "Cannot create task: No workspace selected"):
        super().__init__(message)


class UndoExpiredError(TaskspaceError):
    status_code = 410

    def __init__(self, message: str = "Undo window has expired"):
        super().__init__(message)


class NotConnectedError(TaskspaceError):
    status_code = 401

    def __init__(self, message: str = "Google Calendar not connected"):
        super().__init__(message)


class NotConfiguredError(TaskspaceError):
    status_code = 500


class UpstreamError(TaskspaceError):
    """An external API answered with an error status; the status is passed through."""

    def __init__(self, message: str, status_code: int, details: Optional[str] = None):
        super().__init__(message, status_code=status_code)
        self.details = details


class UnreachableError(UpstreamError):
    """The external service could not be reached at all (no HTTP answer)."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message, status_code=502, details=details)
