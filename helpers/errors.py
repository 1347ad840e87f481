# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Error types for VPC endpoint authorized principal operations.

The OpenSearch client adapter translates botocore error codes into these
classes so the reconciler and the Lambda handler only reason about
validation, authorization, not-found, transport and settle-wait failures.
"""

from typing import Optional


class PrincipalAccessError(Exception):
    """Base exception for authorized principal operations."""

    def __init__(
        self,
        message: str,
        operation: str = "",
        resource_id: str = "",
        error_code: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.operation = operation
        self.resource_id = resource_id
        self.error_code = error_code
        self.cause = cause
        # identifier of a remote change that was applied before this error
        self.applied_resource_id: Optional[str] = None

    def add_context(self, operation: str, resource_id: str) -> "PrincipalAccessError":
        """
        Attribute the error to the mutation it interrupted.

        The message is prefixed with the operation and identifier; type and
        any subclass attributes (elapsed time, last status) are kept.
        """
        if self.args:
            self.args = (f"{operation} {resource_id}: {self.args[0]}",) + self.args[1:]
        self.operation = operation
        self.resource_id = resource_id
        return self


class ValidationError(PrincipalAccessError):
    """A required field is missing or empty. Raised before any remote call."""


class AuthorizationError(PrincipalAccessError):
    """The remote service rejected an authorize or revoke call."""


class NotFoundError(PrincipalAccessError):
    """The domain (or principal) does not exist."""


class TransportError(PrincipalAccessError):
    """Network, throttling or unclassified service failure."""


class SettleTimeoutError(PrincipalAccessError):
    """The domain did not return to Active within the settle window."""

    def __init__(
        self,
        message: str,
        elapsed_seconds: float,
        last_status: Optional[str] = None,
        operation: str = "",
        resource_id: str = ""
    ):
        super().__init__(message, operation=operation, resource_id=resource_id)
        self.elapsed_seconds = elapsed_seconds
        self.last_status = last_status


class SettleCancelledError(PrincipalAccessError):
    """The settle-wait was aborted through its cancellation event."""
