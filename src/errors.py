"""
Reconciliation Errors - Typed failures shared by the gateway and reconcilers.

Only two outcomes are soft: a not-found on read (the driver drops the object
from state) and a wait timeout (the last-known cluster is returned). Every
other failure is raised as one of the exceptions below.
"""

from typing import Any, List, Optional

CUSTOMER_NOT_FOUND_MESSAGE = "Customer not found"


class ReconcileError(Exception):
    """Base class for all reconciliation failures."""

    def __init__(self, message: str, remote_object: Optional[Any] = None):
        self.message = message
        # Set when the remote object was created before the failure.
        self.remote_object = remote_object
        super().__init__(message)


class ValidationError(ReconcileError):
    """Declared input was malformed or rejected by the vendor API."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        remote_object: Optional[Any] = None,
    ):
        super().__init__(message, remote_object=remote_object)
        self.errors = errors or []


class NotFoundError(ReconcileError):
    """The remote object does not exist."""


class RemoteServerError(ReconcileError):
    """Non-2xx response or transport failure from the vendor API."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MalformedIdentity(ReconcileError):
    """A persisted composite id could not be decoded."""


class ProvisionFailure(ReconcileError):
    """A cluster reached a terminal error status while waiting for it."""


def is_customer_not_found(error: Exception) -> bool:
    """
    Check whether an error means the customer record is gone.

    A ``NotFoundError`` is the structured signal. The exact message match is
    kept for gateways that only report the historical error string.
    """
    if isinstance(error, NotFoundError):
        return True
    return str(error) == CUSTOMER_NOT_FOUND_MESSAGE
