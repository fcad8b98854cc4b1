"""
Domain exceptions raised by services; the API layer maps them to HTTP errors
"""
from typing import Any, Dict, List, Optional


class ColocacionError(Exception):
    """Base class for all service-level errors"""
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ColocacionError, ValueError):
    """Input rejected before any state was mutated"""
    status_code = 400


class NotFoundError(ColocacionError, LookupError):
    status_code = 404


class ConfirmationRequired(ColocacionError):
    """
    The update contains critical changes; the caller has to re-submit
    with the returned confirmation token.
    """
    status_code = 409

    def __init__(
        self,
        message: str,
        warnings: Optional[List[Dict[str, Any]]] = None,
        confirmation_token: Optional[str] = None,
    ):
        super().__init__(message)
        self.warnings = warnings or []
        self.confirmation_token = confirmation_token


class ProductBusyError(ColocacionError):
    """Another device holds the product's update lock"""
    status_code = 423


class QueueError(ColocacionError):
    status_code = 500


class SyncPushError(ColocacionError):
    """The ERP rejected a write-back of a local value"""
    status_code = 502
