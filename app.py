# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
OpenSearch VPC Endpoint Authorized Principal Lambda Handler

This Lambda function handles CloudFormation custom resource events to
authorize and revoke AWS accounts on an OpenSearch domain's VPC endpoint.

The handler supports Create, Update, Delete and Read operations:
- Create: Authorizes the account and waits for the domain to settle
- Update: Same upsert as Create; a changed identifier replaces the resource
- Delete: Revokes the account and waits for the domain to settle
- Read: Direct invocation only, reports whether the principal still exists
"""

import json
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, Optional

from helpers.errors import PrincipalAccessError, ValidationError
from helpers.models import AuthorizationRequest, build_resource_id, parse_resource_id
from helpers.opensearch_client import OpenSearchAccessClient
from helpers.principal_reconciler import PrincipalAccessReconciler
from helpers.settle_waiter import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_SETTLE_TIMEOUT_SECONDS

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

# CloudFormation response status constants
SUCCESS = "SUCCESS"
FAILED = "FAILED"

# Seconds kept free at the end of the invocation to send the response
RESPONSE_BUFFER_SECONDS = 10
MIN_REMAINING_SECONDS = 10


class AuthorizedPrincipalCustomResourceError(Exception):
    """Custom exception for custom resource invocation problems"""
    pass


@dataclass
class Settings:
    """Runtime settings resolved from environment and ResourceProperties."""

    region: str
    settle_timeout: float
    poll_interval: float


def _parse_seconds(name: str, value: Any) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number of seconds, got {value!r}", operation="Configure") from None
    if seconds <= 0:
        raise ValidationError(f"{name} must be positive, got {value!r}", operation="Configure")
    return seconds


def load_settings(properties: Dict[str, Any]) -> Settings:
    """
    Resolve settings, ResourceProperties taking priority over environment.

    Args:
        properties: CloudFormation ResourceProperties

    Returns:
        Settings: Region, settle timeout and poll interval
    """
    region = properties.get("Region") or os.environ.get("AWS_REGION", "us-east-1")
    settle_timeout = _parse_seconds(
        "SettleTimeoutSeconds",
        properties.get("SettleTimeoutSeconds")
        or os.environ.get("SETTLE_TIMEOUT_SECONDS", DEFAULT_SETTLE_TIMEOUT_SECONDS)
    )
    poll_interval = _parse_seconds(
        "PollIntervalSeconds",
        properties.get("PollIntervalSeconds")
        or os.environ.get("POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)
    )
    return Settings(region=region, settle_timeout=settle_timeout, poll_interval=poll_interval)


def effective_settle_timeout(settings: Settings, context: Any) -> float:
    """
    Clamp the settle timeout to the time left in this invocation.

    Raises:
        AuthorizedPrincipalCustomResourceError: Too little time remains to do anything
    """
    remaining_time = context.get_remaining_time_in_millis() / 1000
    if remaining_time < MIN_REMAINING_SECONDS:
        raise AuthorizedPrincipalCustomResourceError("Insufficient time remaining for operation")

    timeout = min(settings.settle_timeout, remaining_time - RESPONSE_BUFFER_SECONDS)
    if timeout < settings.settle_timeout:
        logger.warning(
            "Settle timeout reduced from %ss to %ss to fit remaining Lambda time",
            settings.settle_timeout,
            timeout
        )
    return timeout


def send_cfn_response(
    event: Dict[str, Any],
    context: Any,
    status: str,
    data: Optional[Dict[str, Any]] = None,
    physical_resource_id: Optional[str] = None,
    reason: Optional[str] = None
) -> None:
    """
    Send response to CloudFormation via the pre-signed S3 URL.

    Args:
        event: CloudFormation custom resource event containing ResponseURL
        context: Lambda execution context
        status: Response status (SUCCESS or FAILED)
        data: Optional response data dictionary
        physical_resource_id: Physical resource identifier for CloudFormation
        reason: Optional reason string for failures
    """
    response_url = event.get("ResponseURL")
    if not response_url:
        logger.error("No ResponseURL found in event - cannot send response to CloudFormation")
        return

    response_body = {
        "Status": status,
        "Reason": reason or f"See CloudWatch Log Stream: {context.log_stream_name}",
        "PhysicalResourceId": physical_resource_id or context.log_stream_name,
        "StackId": event.get("StackId"),
        "RequestId": event.get("RequestId"),
        "LogicalResourceId": event.get("LogicalResourceId"),
        "Data": data or {}
    }

    json_body = json.dumps(response_body).encode("utf-8")

    logger.info(
        "Sending CloudFormation response: status=%s, physical_resource_id=%s",
        status,
        response_body["PhysicalResourceId"]
    )

    try:
        request = urllib.request.Request(
            response_url,
            data=json_body,
            headers={
                "Content-Type": "application/json",
                "Content-Length": str(len(json_body))
            },
            method="PUT"
        )

        with urllib.request.urlopen(request, timeout=30) as response:
            logger.info(
                "CloudFormation response sent successfully: status_code=%d",
                response.status
            )

    except urllib.error.URLError as e:
        logger.error("Failed to send CloudFormation response: %s", str(e))
    except Exception as e:
        logger.exception("Unexpected error sending CloudFormation response: %s", str(e))


def get_authorization_request(properties: Dict[str, Any]) -> AuthorizationRequest:
    """Build the declared pairing from ResourceProperties."""
    return AuthorizationRequest(
        domain_name=(properties.get("DomainName") or "").strip(),
        account=str(properties.get("Account") or "").strip()
    )


def handle_create(
    properties: Dict[str, Any],
    reconciler: PrincipalAccessReconciler,
    timeout: float
) -> Dict[str, Any]:
    """
    Handle Create operation by authorizing the account.

    Args:
        properties: CloudFormation ResourceProperties
        reconciler: Reconciler bound to the OpenSearch client
        timeout: Settle timeout in seconds

    Returns:
        Dict containing principal details for CloudFormation response Data
    """
    request = get_authorization_request(properties)
    result = reconciler.create(request, timeout=timeout)
    resource_id = result.resource_id

    # Read back so the returned attributes reflect the service
    principal = reconciler.read(request.domain_name, resource_id)
    if principal is None:
        logger.warning(
            "Authorized principal %s not yet listed on domain %s, returning declared values",
            resource_id,
            request.domain_name
        )
        response_data = {
            "Id": resource_id,
            "DomainName": request.domain_name,
            "Principal": request.account,
            "PrincipalType": ""
        }
    else:
        response_data = principal.to_dict()

    response_data["PhysicalResourceId"] = resource_id
    response_data["SettleSeconds"] = round(result.settle_seconds, 1)

    logger.info("Authorized principal created: id=%s", resource_id)
    return response_data


def handle_update(
    properties: Dict[str, Any],
    physical_resource_id: Optional[str],
    reconciler: PrincipalAccessReconciler,
    timeout: float
) -> Dict[str, Any]:
    """
    Handle Update operation.

    Authorization is an upsert, so Update repeats Create. When DomainName or
    Account changed the identifier changes too, and CloudFormation follows up
    with a Delete of the old physical resource.
    """
    response_data = handle_create(properties, reconciler, timeout)

    if physical_resource_id and physical_resource_id != response_data["PhysicalResourceId"]:
        logger.info(
            "Authorized principal replaced: %s -> %s",
            physical_resource_id,
            response_data["PhysicalResourceId"]
        )
    return response_data


def handle_delete(
    properties: Dict[str, Any],
    physical_resource_id: Optional[str],
    reconciler: PrincipalAccessReconciler,
    timeout: float
) -> Dict[str, Any]:
    """
    Handle Delete operation by revoking the account.

    A physical resource ID that was never assigned by Create (the create
    failed) means there is nothing to revoke.
    """
    if parse_resource_id(physical_resource_id) is None:
        logger.warning(
            "Physical resource ID %s is not an authorized principal - treating delete as no-op",
            physical_resource_id
        )
        return {
            "Message": "Delete operation completed (no authorized principal to revoke)",
            "PhysicalResourceId": physical_resource_id
        }

    request = get_authorization_request(properties)
    result = reconciler.delete(request, identifier=physical_resource_id, timeout=timeout)

    return {
        "Message": f"Revoked access for {request.account} on domain {request.domain_name}",
        "PhysicalResourceId": physical_resource_id,
        "SettleSeconds": round(result.settle_seconds, 1)
    }


def handle_read(
    properties: Dict[str, Any],
    physical_resource_id: Optional[str],
    reconciler: PrincipalAccessReconciler
) -> Dict[str, Any]:
    """
    Handle a direct Read invocation used for drift detection.

    Returns:
        Dict with Exists and, when present, the principal attributes
    """
    request = get_authorization_request(properties)
    if not request.domain_name:
        raise ValidationError("Missing required parameters: DomainName", operation="Read")

    identifier = physical_resource_id
    if not identifier:
        request.validate()
        # Accounts are always reported with the AWS_ACCOUNT principal type
        identifier = build_resource_id(request.account, "AWS_ACCOUNT", request.domain_name)

    principal = reconciler.refresh(request.domain_name, identifier, is_new=False)
    if principal is None:
        return {"Exists": False, "Id": identifier, "PhysicalResourceId": identifier}

    response_data = principal.to_dict()
    response_data["Exists"] = True
    response_data["PhysicalResourceId"] = identifier
    return response_data


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for CloudFormation custom resource.

    Args:
        event: CloudFormation custom resource event
        context: Lambda execution context

    Returns:
        Dict containing the operation result (for direct Lambda invocation testing)
    """
    logger.info("Received authorized principal custom resource event")
    logger.info("Event: %s", json.dumps(event, default=str, indent=2))

    request_type = event.get("RequestType", "Unknown")
    properties = event.get("ResourceProperties", {})
    physical_resource_id = event.get("PhysicalResourceId")

    logger.info(
        "Processing request: type=%s, domain_name=%s, physical_resource_id=%s",
        request_type,
        properties.get("DomainName"),
        physical_resource_id
    )

    response_data: Dict[str, Any] = {}
    status = SUCCESS
    reason = None

    try:
        settings = load_settings(properties)
        reconciler = PrincipalAccessReconciler(
            OpenSearchAccessClient(region=settings.region),
            settle_timeout=settings.settle_timeout,
            poll_interval=settings.poll_interval
        )

        if request_type == "Create":
            timeout = effective_settle_timeout(settings, context)
            response_data = handle_create(properties, reconciler, timeout)
            physical_resource_id = response_data["PhysicalResourceId"]

        elif request_type == "Update":
            timeout = effective_settle_timeout(settings, context)
            response_data = handle_update(properties, physical_resource_id, reconciler, timeout)
            physical_resource_id = response_data["PhysicalResourceId"]

        elif request_type == "Delete":
            timeout = effective_settle_timeout(settings, context)
            response_data = handle_delete(properties, physical_resource_id, reconciler, timeout)

        elif request_type == "Read":
            response_data = handle_read(properties, physical_resource_id, reconciler)
            physical_resource_id = response_data["PhysicalResourceId"]

        else:
            raise AuthorizedPrincipalCustomResourceError(f"Unknown RequestType: {request_type}")

        logger.info(
            "Operation completed successfully: request_type=%s, physical_resource_id=%s",
            request_type,
            physical_resource_id
        )

    except ValidationError as e:
        logger.error("Validation error during %s operation: %s", request_type, str(e))
        status = FAILED
        reason = f"Validation error: {str(e)}"
        response_data = {
            "Error": str(e),
            "ErrorType": "ValidationError"
        }

    except PrincipalAccessError as e:
        logger.error(
            "%s during %s operation (%s): %s",
            type(e).__name__,
            request_type,
            e.operation,
            str(e)
        )
        status = FAILED
        reason = f"{type(e).__name__}: {str(e)}"
        response_data = {
            "Error": str(e),
            "ErrorType": type(e).__name__,
            "Operation": e.operation,
            "ResourceId": e.resource_id
        }
        # The authorization exists even though Create failed; report its id
        # so the rollback Delete revokes it
        if request_type == "Create" and e.applied_resource_id:
            physical_resource_id = e.applied_resource_id
            response_data["PhysicalResourceId"] = physical_resource_id

    except Exception as e:
        logger.exception("Unexpected error during %s operation: %s", request_type, str(e))
        status = FAILED
        reason = f"Unexpected error: {str(e)}"
        response_data = {
            "Error": str(e),
            "ErrorType": type(e).__name__
        }

    if request_type != "Read":
        send_cfn_response(
            event=event,
            context=context,
            status=status,
            data=response_data,
            physical_resource_id=physical_resource_id,
            reason=reason
        )

    return {
        "Status": status,
        "PhysicalResourceId": physical_resource_id,
        "Data": response_data,
        "Reason": reason
    }
