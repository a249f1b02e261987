"""
Domain error taxonomy

Services raise these instead of HTTPException so the same code paths serve
HTTP handlers, the arq worker and the webhook reconciler. main.py renders
them as JSON with the status_code and code below.
"""

from typing import Optional


class BookingError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 400
    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class ConflictError(BookingError):
    """Slot already taken or the booking is not in a state that allows the change"""

    status_code = 409
    code = "conflict"


class GroupCancellationError(ConflictError):
    code = "group_partial_failure"

    def __init__(self, group_id: str, failed: dict[int, str]):
        super().__init__(f"Could not cancel {len(failed)} booking(s) in group {group_id}")
        self.group_id = group_id
        self.failed = failed

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["failed"] = {str(k): v for k, v in self.failed.items()}
        return data


class ValidationError(BookingError):
    status_code = 422
    code = "validation_error"


class UnauthorizedError(BookingError):
    status_code = 401
    code = "unauthorized"


class InconsistencyError(BookingError):
    """Recorded payment data disagrees with an incoming confirmation"""

    status_code = 409
    code = "inconsistency"


class UpstreamTimeoutError(BookingError):
    status_code = 504
    code = "upstream_timeout"

    def __init__(self, detail: str, upstream: Optional[str] = None):
        super().__init__(detail)
        self.upstream = upstream
