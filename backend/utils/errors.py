"""Ledger error taxonomy.

Each error is an HTTPException so helpers can raise it directly and FastAPI
renders it with the matching status code.
"""

from fastapi import HTTPException, status


class LedgerError(HTTPException):
    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(status_code=self.default_status, detail=detail)


class ValidationError(LedgerError):
    """Bad amount, participant list or split totals."""


class InvalidAmount(ValidationError):
    pass


class InvalidParticipants(ValidationError):
    pass


class SplitMismatch(ValidationError):
    pass


class NotFound(LedgerError):
    default_status = status.HTTP_404_NOT_FOUND


class Conflict(LedgerError):
    """Mutation refused because of settlement state or a concurrent write."""
    default_status = status.HTTP_409_CONFLICT


class PermissionDenied(LedgerError):
    default_status = status.HTTP_403_FORBIDDEN


class RoundingResidual(UserWarning):
    """Settlement left more than one paise unmatched. Never fatal."""
