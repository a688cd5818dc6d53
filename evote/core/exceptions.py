"""Election domain errors.

Every error carries a stable ``code`` that callers use to tell rejections
apart, plus the HTTP status the API layer answers with.
"""

from typing import Any

from fastapi import status


class ElectionError(Exception):
    """Base class for every rejected election operation."""

    code = "ELECTION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Election operation failed"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "data": None,
            "errors": {"code": self.code, **self.details},
        }


class ValidationFailed(ElectionError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Validation failed"


class ElectionNotFound(ElectionError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Election not found"


class CandidateNotFound(ElectionError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Candidate not found"


class ElectionNotActive(ElectionError):
    code = "ELECTION_NOT_ACTIVE"
    default_message = "Election is not currently active"


class NotEligible(ElectionError):
    code = "NOT_ELIGIBLE"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not eligible to vote in this election"


class InvalidCandidate(ElectionError):
    code = "INVALID_CANDIDATE"
    default_message = "Invalid candidate for this election"


class AlreadyVoted(ElectionError):
    code = "ALREADY_VOTED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "You have already voted in this election"


class ResultsNotPublic(ElectionError):
    code = "RESULTS_NOT_PUBLIC"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Results have not been published yet"


class NotCommissioner(ElectionError):
    code = "NOT_COMMISSIONER"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not a commissioner for this election"


class AlreadyApproved(ElectionError):
    code = "ALREADY_APPROVED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Results already approved by this commissioner"


class ElectionNotEnded(ElectionError):
    code = "ELECTION_NOT_ENDED"
    default_message = "Cannot approve results. Election has not ended yet"


class ElectionLocked(ElectionError):
    code = "ELECTION_LOCKED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Election can no longer be modified"


class InvalidStatusTransition(ElectionError):
    code = "INVALID_STATUS_TRANSITION"
    default_message = "Invalid election status transition"


class AlreadyCommissioner(ElectionError):
    code = "ALREADY_COMMISSIONER"
    status_code = status.HTTP_409_CONFLICT
    default_message = "User is already a commissioner for this election"


class ResultsAlreadyPublished(ElectionError):
    code = "RESULTS_ALREADY_PUBLISHED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Results for this election are already published"


__all__ = [
    "ElectionError",
    "ValidationFailed",
    "ElectionNotFound",
    "CandidateNotFound",
    "ElectionNotActive",
    "NotEligible",
    "InvalidCandidate",
    "AlreadyVoted",
    "ResultsNotPublic",
    "NotCommissioner",
    "AlreadyApproved",
    "ElectionNotEnded",
    "ElectionLocked",
    "InvalidStatusTransition",
    "AlreadyCommissioner",
    "ResultsAlreadyPublished",
]
