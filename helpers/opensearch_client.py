# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
OpenSearch Service Client Helper for VPC Endpoint Access

This module wraps the boto3 'opensearch' control plane client for the three
VPC endpoint access calls (AuthorizeVpcEndpointAccess, ListVpcEndpointAccess,
RevokeVpcEndpointAccess) and the DescribeDomain call used while waiting for
a configuration change to finish.

botocore error codes are classified here into the exception types of
helpers.errors so callers never match on provider-specific strings.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from helpers.errors import (
    AuthorizationError,
    NotFoundError,
    PrincipalAccessError,
    TransportError,
)
from helpers.models import AuthorizedPrincipal, DomainProcessingStatus

logger = logging.getLogger(__name__)

NOT_FOUND_ERROR_CODES = frozenset({
    "ResourceNotFoundException",
})

REJECTED_ERROR_CODES = frozenset({
    "ValidationException",
    "LimitExceededException",
    "AccessDeniedException",
    "DisabledOperationException",
    "ConflictException",
    "BaseException",
})


def create_opensearch_client(
    region: Optional[str] = None,
    session: Optional[boto3.Session] = None
) -> Any:
    """
    Create a boto3 OpenSearch Service client with retry settings.

    Args:
        region: AWS region. Falls back to AWS_REGION.
        session: Optional boto3 session to create the client from

    Returns:
        boto3 'opensearch' client
    """
    config = Config(
        retries={
            "max_attempts": 3,
            "mode": "standard"
        },
        connect_timeout=5,
        read_timeout=30
    )
    region_name = region or os.environ.get("AWS_REGION", "us-east-1")
    factory = session or boto3
    logger.info("Creating OpenSearch Service client for region %s", region_name)
    return factory.client("opensearch", region_name=region_name, config=config)


def classify_client_error(
    error: Exception,
    operation: str,
    domain_name: str
) -> PrincipalAccessError:
    """
    Translate a botocore exception into a PrincipalAccessError.

    Args:
        error: ClientError or BotoCoreError raised by boto3
        operation: OpenSearch API operation name
        domain_name: Domain the call targeted

    Returns:
        PrincipalAccessError: NotFoundError, AuthorizationError or TransportError
    """
    if isinstance(error, ClientError):
        error_code = error.response.get("Error", {}).get("Code", "Unknown")
        error_message = error.response.get("Error", {}).get("Message", str(error))
        message = f"{operation} failed for domain {domain_name}: {error_code} - {error_message}"

        if error_code in NOT_FOUND_ERROR_CODES:
            error_class = NotFoundError
        elif error_code in REJECTED_ERROR_CODES:
            error_class = AuthorizationError
        else:
            error_class = TransportError

        return error_class(
            message,
            operation=operation,
            resource_id=domain_name,
            error_code=error_code,
            cause=error
        )

    return TransportError(
        f"{operation} failed for domain {domain_name}: {str(error)}",
        operation=operation,
        resource_id=domain_name,
        error_code=type(error).__name__,
        cause=error
    )


class OpenSearchAccessClient:
    """
    Access-control client for OpenSearch VPC endpoints.

    The client holds no per-domain state and may be shared between
    reconciliations.

    Attributes:
        region: AWS region of the domains
    """

    def __init__(
        self,
        region: Optional[str] = None,
        client: Optional[Any] = None
    ) -> None:
        """
        Initialize the access client.

        Args:
            region: AWS region. Falls back to AWS_REGION.
            client: Pre-built boto3 'opensearch' client. Created when omitted.
        """
        self.region = region or os.environ.get("AWS_REGION", "us-east-1")
        self._client = client or create_opensearch_client(self.region)

    def _call(self, operation: str, domain_name: str, method_name: str, **kwargs: Any) -> Dict[str, Any]:
        logger.debug("Calling %s for domain %s with %s", operation, domain_name, kwargs)
        try:
            return getattr(self._client, method_name)(**kwargs)
        except (ClientError, BotoCoreError) as error:
            classified = classify_client_error(error, operation, domain_name)
            logger.error(
                "OpenSearch API error: operation=%s, domain=%s, code=%s, type=%s",
                operation,
                domain_name,
                classified.error_code,
                type(classified).__name__
            )
            raise classified from error

    def authorize_vpc_endpoint_access(self, domain_name: str, account: str) -> AuthorizedPrincipal:
        """
        Authorize an AWS account to access the domain through a VPC endpoint.

        Args:
            domain_name: OpenSearch domain name
            account: AWS account ID to authorize

        Returns:
            AuthorizedPrincipal: principal as reported by the service

        Raises:
            AuthorizationError: the service rejected the request
            NotFoundError: the domain does not exist
            TransportError: any other failure
        """
        logger.info("Authorizing account %s on domain %s", account, domain_name)
        response = self._call(
            "AuthorizeVpcEndpointAccess",
            domain_name,
            "authorize_vpc_endpoint_access",
            DomainName=domain_name,
            Account=account
        )
        principal = AuthorizedPrincipal.from_api(
            response.get("AuthorizedPrincipal", {}),
            domain_name
        )
        logger.info(
            "Authorized principal: principal=%s, type=%s, domain=%s",
            principal.principal,
            principal.principal_type,
            domain_name
        )
        return principal

    def list_vpc_endpoint_access(self, domain_name: str) -> List[AuthorizedPrincipal]:
        """
        List every principal authorized on the domain, following NextToken.

        Args:
            domain_name: OpenSearch domain name

        Returns:
            List[AuthorizedPrincipal]: possibly empty

        Raises:
            NotFoundError: the domain does not exist
        """
        principals: List[AuthorizedPrincipal] = []
        next_token: Optional[str] = None

        while True:
            params: Dict[str, Any] = {"DomainName": domain_name}
            if next_token:
                params["NextToken"] = next_token

            response = self._call(
                "ListVpcEndpointAccess",
                domain_name,
                "list_vpc_endpoint_access",
                **params
            )
            for item in response.get("AuthorizedPrincipalList", []):
                principals.append(AuthorizedPrincipal.from_api(item, domain_name))

            next_token = response.get("NextToken")
            if not next_token:
                break

        logger.info("Found %d authorized principals on domain %s", len(principals), domain_name)
        return principals

    def revoke_vpc_endpoint_access(self, domain_name: str, account: str) -> None:
        """
        Revoke an account's access to the domain's VPC endpoint.

        Raises:
            AuthorizationError: the service rejected the request
            NotFoundError: the domain or the authorization does not exist
        """
        logger.info("Revoking account %s on domain %s", account, domain_name)
        self._call(
            "RevokeVpcEndpointAccess",
            domain_name,
            "revoke_vpc_endpoint_access",
            DomainName=domain_name,
            Account=account
        )

    def get_domain_status(self, domain_name: str) -> DomainProcessingStatus:
        """
        Report whether the domain is still applying a configuration change.

        Returns:
            DomainProcessingStatus: PROCESSING while Processing or
            UpgradeProcessing is set, ACTIVE otherwise
        """
        response = self._call(
            "DescribeDomain",
            domain_name,
            "describe_domain",
            DomainName=domain_name
        )
        domain_status = response.get("DomainStatus", {})
        if domain_status.get("Processing") or domain_status.get("UpgradeProcessing"):
            return DomainProcessingStatus.PROCESSING
        return DomainProcessingStatus.ACTIVE
