"""
Workflow Exceptions
Error taxonomy shared by the approval workflow, the SLA sweeper and the API layer
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for errors raised by the approval workflow"""

    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.__class__.__name__,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(WorkflowError):
    """Missing comments on reject/send-back, missing payment proof, bad edits"""
    status_code = 400


class Unauthorized(WorkflowError):
    """Actor lacks the capability for the level or action"""
    status_code = 403


class Forbidden(WorkflowError):
    """Action not permitted for this actor on this request"""
    status_code = 403


class NotFound(WorkflowError):
    """Unknown request reference"""
    status_code = 404


class IllegalTransition(WorkflowError):
    """Request is not in a state that accepts the requested transition"""
    status_code = 409


class Conflict(WorkflowError):
    """Concurrent modification detected; reload and retry"""
    status_code = 409


class ImmutableRecordError(WorkflowError):
    """Attempt to mutate an append-only or frozen record"""
    status_code = 409


class NotificationFailure(WorkflowError):
    """Notification dispatch failed; logged, never propagated"""
    status_code = 500
