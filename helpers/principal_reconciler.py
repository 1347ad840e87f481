# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Reconciler for OpenSearch VPC endpoint authorized principals.

Translates the declared (domain name, account) pairing into
AuthorizeVpcEndpointAccess / ListVpcEndpointAccess / RevokeVpcEndpointAccess
calls and waits for the domain to settle after each mutation.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from helpers.errors import AuthorizationError, NotFoundError, PrincipalAccessError
from helpers.models import AuthorizationRequest, AuthorizedPrincipal
from helpers.opensearch_client import OpenSearchAccessClient
from helpers.settle_waiter import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_SETTLE_TIMEOUT_SECONDS,
    wait_for_domain_active,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one create, update or delete."""
    resource_id: str
    settle_seconds: float = 0.0


class PrincipalAccessReconciler:
    """
    Converges the authorized principals of a domain to the declared state.

    Attributes:
        client: Access-control client shared across reconciliations
        settle_timeout: Default seconds to wait for the domain after a mutation
        poll_interval: Seconds between domain status checks
    """

    def __init__(
        self,
        client: OpenSearchAccessClient,
        settle_timeout: float = DEFAULT_SETTLE_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    ) -> None:
        self.client = client
        self.settle_timeout = settle_timeout
        self.poll_interval = poll_interval

    def _wait_for_domain(
        self,
        domain_name: str,
        operation: str,
        resource_id: str,
        timeout: Optional[float],
        cancel_event: Optional[threading.Event]
    ) -> float:
        try:
            return wait_for_domain_active(
                self.client.get_domain_status,
                domain_name,
                timeout=self.settle_timeout if timeout is None else timeout,
                poll_interval=self.poll_interval,
                cancel_event=cancel_event
            )
        except PrincipalAccessError as error:
            error.add_context(operation, resource_id)
            raise

    def create(
        self,
        request: AuthorizationRequest,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> ReconcileResult:
        """
        Authorize the account on the domain and wait for the domain to settle.

        Authorizing an already-authorized account is a no-op on the service
        side and yields the same identifier.

        Args:
            request: Declared domain/account pairing
            timeout: Settle timeout override in seconds
            cancel_event: Aborts the settle-wait when set

        Returns:
            ReconcileResult: Identifier of the authorized principal and the settle duration

        Raises:
            ValidationError: Missing domain name or account
            AuthorizationError: The service rejected the authorization
            SettleTimeoutError: The domain did not return to Active in time.
                The authorization is already applied; its identifier is
                carried in ``applied_resource_id``.
        """
        request.validate()

        try:
            principal = self.client.authorize_vpc_endpoint_access(request.domain_name, request.account)
        except NotFoundError as error:
            raise AuthorizationError(
                f"Error authorizing principal {request.account}: domain {request.domain_name} not found",
                operation="AuthorizeVpcEndpointAccess",
                resource_id=request.domain_name,
                error_code=error.error_code,
                cause=error
            ) from error

        resource_id = principal.resource_id
        logger.info("Authorized principal %s, waiting for domain %s", resource_id, request.domain_name)

        try:
            settle_seconds = self._wait_for_domain(
                request.domain_name,
                "AuthorizeVpcEndpointAccess",
                resource_id,
                timeout,
                cancel_event
            )
        except PrincipalAccessError as error:
            error.applied_resource_id = resource_id
            raise

        return ReconcileResult(resource_id, settle_seconds)

    # Create and Update are the same upsert
    update = create

    def read(self, domain_name: str, identifier: str) -> Optional[AuthorizedPrincipal]:
        """
        Find the authorized principal with the given identifier.

        Returns:
            AuthorizedPrincipal or None when the domain has no matching entry

        Raises:
            NotFoundError: The domain itself does not exist
        """
        for principal in self.client.list_vpc_endpoint_access(domain_name):
            if principal.resource_id == identifier:
                return principal

        logger.info("Authorized principal %s not found on domain %s", identifier, domain_name)
        return None

    def refresh(
        self,
        domain_name: str,
        identifier: str,
        is_new: bool = False
    ) -> Optional[AuthorizedPrincipal]:
        """
        Read for state refresh. A tracked resource whose domain has disappeared
        has drifted and is reported as absent instead of failing.
        """
        try:
            return self.read(domain_name, identifier)
        except NotFoundError:
            if is_new:
                raise
            logger.warning(
                "Domain %s not found, removing authorized principal %s from tracking",
                domain_name,
                identifier
            )
            return None

    def delete(
        self,
        request: AuthorizationRequest,
        identifier: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> ReconcileResult:
        """
        Revoke the account's access and wait for the domain to settle.

        A principal (or domain) that is already gone counts as deleted and
        reports a zero settle duration.

        Args:
            request: Declared domain/account pairing
            identifier: Tracked identifier, used to label results and errors
            timeout: Settle timeout override in seconds
            cancel_event: Aborts the settle-wait when set

        Raises:
            ValidationError: Missing domain name or account
            AuthorizationError: The service rejected the revocation
            SettleTimeoutError: The domain did not return to Active in time
        """
        request.validate()
        resource_id = identifier or request.account

        try:
            self.client.revoke_vpc_endpoint_access(request.domain_name, request.account)
        except NotFoundError:
            logger.info(
                "Authorization for %s on domain %s not found, considering as successfully deleted",
                request.account,
                request.domain_name
            )
            return ReconcileResult(resource_id)

        settle_seconds = self._wait_for_domain(
            request.domain_name,
            "RevokeVpcEndpointAccess",
            resource_id,
            timeout,
            cancel_event
        )
        logger.info("Revoked access for %s on domain %s", request.account, request.domain_name)
        return ReconcileResult(resource_id, settle_seconds)
