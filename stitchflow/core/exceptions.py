"""Domain errors raised by the workflow services.

Services raise these before mutating anything; the API layer maps them to
HTTP responses (see ``stitchflow.main``).
"""
from typing import Dict, Optional


class WorkflowError(Exception):
    """Base exception for fulfillment workflow errors."""
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(WorkflowError):
    """Referenced order, order item, section, packet or demand does not exist."""
    status_code = 404


class InvalidStateError(WorkflowError):
    """Operation is not allowed from the entity's current status."""
    status_code = 400


class ValidationError(WorkflowError):
    """Input failed a business rule check (missing reason, bad quantity, ...)."""
    status_code = 422
