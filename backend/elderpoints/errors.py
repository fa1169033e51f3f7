from __future__ import annotations
from typing import Any


class PointsError(Exception):
    """Base for domain errors; carries the HTTP status the API maps it to."""
    status_code = 400
    code = "error"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details


class ValidationError(PointsError):
    status_code = 422
    code = "validation_error"


class PermissionDeniedError(PointsError):
    status_code = 403
    code = "permission_denied"


class NotFoundError(PointsError):
    status_code = 404
    code = "not_found"


class Unauthorized(PointsError):
    status_code = 401
    code = "unauthorized"


class InsufficientFunds(PointsError):
    status_code = 402
    code = "insufficient_funds"


class PartialSettlementFailure(PointsError):
    """
    One or more per-participant side effects failed after the match was committed.
    Attached to the settlement report and logged; the match itself stays completed.
    """
    status_code = 207
    code = "partial_settlement_failure"

    def __init__(self, match_id, failures: list):
        super().__init__(
            f"{len(failures)} participant(s) not fully settled for match {match_id}",
            details=[f.model_dump(mode="json") for f in failures],
        )
        self.match_id = match_id
        self.failures = failures
