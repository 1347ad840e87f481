# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Helper modules for the OpenSearch Authorized Principal Lambda.

This package contains:
- models: request, principal and identifier types
- errors: error taxonomy shared by the client and the reconciler
- opensearch_client: boto3 adapter for the VPC endpoint access API
- settle_waiter: fixed-interval wait for domain configuration changes
- principal_reconciler: create/read/update/delete of authorized principals
"""

from helpers.opensearch_client import OpenSearchAccessClient
from helpers.principal_reconciler import PrincipalAccessReconciler

__all__ = ["OpenSearchAccessClient", "PrincipalAccessReconciler"]
