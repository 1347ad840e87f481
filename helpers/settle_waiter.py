# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Settle-wait for OpenSearch domain configuration changes.

Authorizing or revoking VPC endpoint access starts an asynchronous
configuration update on the domain. wait_for_domain_active() polls the
domain status on a fixed interval until it reports Active again.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from helpers.errors import SettleCancelledError, SettleTimeoutError, TransportError
from helpers.models import DomainProcessingStatus

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT_SECONDS = 600
DEFAULT_POLL_INTERVAL_SECONDS = 15


class SettleState(Enum):
    """States of the settle-wait."""
    PROCESSING = "Processing"
    ACTIVE = "Active"
    FAILED = "Failed"


def wait_for_domain_active(
    get_status: Callable[[str], DomainProcessingStatus],
    domain_name: str,
    timeout: float = DEFAULT_SETTLE_TIMEOUT_SECONDS,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    cancel_event: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Optional[Callable[[float], bool]] = None
) -> float:
    """
    Block until the domain reports Active, the timeout elapses, or the wait
    is cancelled.

    Args:
        get_status: Returns the current DomainProcessingStatus of a domain
        domain_name: Domain to watch
        timeout: Seconds to wait before giving up
        poll_interval: Fixed delay between status checks
        cancel_event: Setting this event aborts the wait
        clock: Monotonic clock in seconds
        sleep: Waits for the given seconds and returns True when cancelled.
               Defaults to cancel_event.wait().

    Returns:
        float: Seconds elapsed until the domain became Active

    Raises:
        SettleTimeoutError: Still processing when the timeout elapsed
        SettleCancelledError: cancel_event was set
        NotFoundError, AuthorizationError: Permanent failure while polling
    """
    event = cancel_event or threading.Event()
    wait = sleep or event.wait

    state = SettleState.PROCESSING
    last_status: Optional[DomainProcessingStatus] = None
    start = clock()

    logger.info(
        "Waiting for domain %s to become Active: timeout=%ss, poll_interval=%ss",
        domain_name,
        timeout,
        poll_interval
    )

    while state is SettleState.PROCESSING:
        if event.is_set():
            raise SettleCancelledError(
                f"Wait for domain {domain_name} cancelled after {clock() - start:.1f}s",
                operation="WaitForDomainActive",
                resource_id=domain_name
            )

        try:
            last_status = get_status(domain_name)
        except TransportError as error:
            # transient, keep polling until the deadline
            logger.warning("Domain status check failed for %s, will retry: %s", domain_name, str(error))
        except Exception:
            state = SettleState.FAILED
            logger.error("Domain status check for %s failed permanently", domain_name)
            raise

        elapsed = clock() - start

        if last_status is DomainProcessingStatus.ACTIVE:
            state = SettleState.ACTIVE
            break

        if elapsed >= timeout:
            state = SettleState.FAILED
            logger.error(
                "Domain %s still %s after %.1fs",
                domain_name,
                last_status or "unknown",
                elapsed
            )
            raise SettleTimeoutError(
                f"Timed out after {elapsed:.1f}s waiting for domain {domain_name} "
                f"to become Active (last status: {last_status or 'unknown'})",
                elapsed_seconds=elapsed,
                last_status=str(last_status) if last_status else None,
                operation="WaitForDomainActive",
                resource_id=domain_name
            )

        logger.debug("Domain %s is %s, elapsed %.1fs", domain_name, last_status, elapsed)
        if wait(min(poll_interval, timeout - elapsed)):
            raise SettleCancelledError(
                f"Wait for domain {domain_name} cancelled after {clock() - start:.1f}s",
                operation="WaitForDomainActive",
                resource_id=domain_name
            )

    elapsed = clock() - start
    logger.info("Domain %s is %s after %.1fs", domain_name, state.value, elapsed)
    return elapsed
