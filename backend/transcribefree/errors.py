"""Exceptions the HTTP layer maps straight onto JSON error responses."""

from typing import Any


class AppBaseException(Exception):
    """Domain-level base exception so we can map to JSON responses easily."""

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class UploadRejected(AppBaseException):
    """A file failed validation; ``detail`` carries the reason and remediation."""

    def __init__(self, error: str, reason: str) -> None:
        super().__init__(400, {"error": error, "reason": reason})
