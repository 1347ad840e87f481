# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Data types for OpenSearch VPC endpoint authorized principals.

An AuthorizationRequest is what the stack declares, an AuthorizedPrincipal
is what the OpenSearch service reports back. Both are correlated through
the resource identifier built by build_resource_id().
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from helpers.errors import ValidationError

RESOURCE_ID_PREFIX = "authorized-principal"


class DomainProcessingStatus(Enum):
    """Configuration state of an OpenSearch domain."""
    PROCESSING = "Processing"
    ACTIVE = "Active"

    def __str__(self) -> str:
        return self.value


def build_resource_id(principal: str, principal_type: str, domain_name: str) -> str:
    """
    Build the identifier of an authorized principal.

    Args:
        principal: AWS account ID (or service principal) that was authorized
        principal_type: Principal type as reported by OpenSearch
        domain_name: Name of the OpenSearch domain

    Returns:
        str: authorized-principal-{principal}-{principal_type}-{domain_name}
    """
    return f"{RESOURCE_ID_PREFIX}-{principal}-{principal_type}-{domain_name}"


def parse_resource_id(identifier: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Split an identifier into (principal, remainder).

    Domain names may contain hyphens, so only the principal can be recovered
    without knowing the domain. Returns None for identifiers that were not
    produced by build_resource_id(), e.g. the log stream name CloudFormation
    receives when a create fails before an ID is assigned.
    """
    if not identifier or not identifier.startswith(RESOURCE_ID_PREFIX + "-"):
        return None

    principal, _, remainder = identifier[len(RESOURCE_ID_PREFIX) + 1:].partition("-")
    if not principal or not remainder:
        return None
    return principal, remainder


@dataclass(frozen=True)
class AuthorizationRequest:
    """Declared pairing of an account with an OpenSearch domain."""

    domain_name: str
    account: str

    def validate(self) -> None:
        """
        Check that both fields are present.

        Raises:
            ValidationError: naming every missing field
        """
        missing_params = []
        if not self.domain_name or not str(self.domain_name).strip():
            missing_params.append("DomainName")
        if not self.account or not str(self.account).strip():
            missing_params.append("Account")

        if missing_params:
            raise ValidationError(
                f"Missing required parameters: {', '.join(missing_params)}",
                operation="Validate"
            )


@dataclass(frozen=True)
class AuthorizedPrincipal:
    """Principal allowed to reach a domain through its VPC endpoint."""

    principal: str
    principal_type: str
    domain_name: str

    @property
    def resource_id(self) -> str:
        return build_resource_id(self.principal, self.principal_type, self.domain_name)

    @classmethod
    def from_api(cls, item: Dict[str, Any], domain_name: str) -> "AuthorizedPrincipal":
        """Build from an AuthorizedPrincipal structure of the OpenSearch API."""
        return cls(
            principal=item.get("Principal", ""),
            principal_type=item.get("PrincipalType", ""),
            domain_name=domain_name
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the attribute names returned to CloudFormation."""
        return {
            "Id": self.resource_id,
            "DomainName": self.domain_name,
            "Principal": self.principal,
            "PrincipalType": self.principal_type
        }
