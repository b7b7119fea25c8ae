"""
Domain exception hierarchy for the dispute engine.

Each class carries the HTTP status it is rendered with, so the application
registers a single handler for RecursoError and every façade gets consistent
responses.
"""

from typing import List, Optional


class RecursoError(Exception):
    """Base class for all reported dispute errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RecursoError):
    """Missing or invalid input. Raised before any write is attempted."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidStateError(RecursoError):
    """Transition not allowed from the aggregate's current state."""

    status_code = 400


class NotFoundError(RecursoError):
    """
    Referenced dispute, lote, guia or auditor is absent or not owned by the caller.

    Used for both cases on purpose: a 403 would confirm the record exists.
    """

    status_code = 404

    def __init__(self, resource: str, resource_id=None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} não encontrado")


class ConflictError(RecursoError):
    """Concurrent modification, duplicate open dispute or ambiguous ledger code."""

    status_code = 409


class TransactionError(RecursoError):
    """Unexpected failure inside a transactional block, after rollback."""

    status_code = 500
