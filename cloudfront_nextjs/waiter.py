"""waiter.py — Poll remote state until it settles.

One loop serves both waits in a run: Lambda version activation (short
interval) and CloudFront distribution propagation (long interval). A failing
poll is fatal at once; only "not ready yet" is retried.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .errors import DeploymentTimeout, RemoteLookupError, RemoteMutationError

logger = logging.getLogger(__name__)

FUNCTION_ACTIVE = "Active"
FUNCTION_FAILED = "Failed"
UPDATE_SUCCESSFUL = "Successful"
UPDATE_FAILED = "Failed"
DISTRIBUTION_DEPLOYED = "Deployed"


class Waiter:
    """Fixed-interval poller with an injectable clock."""

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sleep = sleep
        self._monotonic = monotonic

    def poll(
        self,
        description: str,
        check: Callable[[], bool],
        *,
        interval: float,
        timeout: Optional[float] = None,
    ) -> int:
        """Call ``check`` until it returns True. Returns the number of polls.

        ``timeout=None`` polls forever.
        """
        deadline = None if timeout is None else self._monotonic() + timeout
        attempts = 0
        while True:
            attempts += 1
            if check():
                return attempts
            if deadline is not None and self._monotonic() + interval > deadline:
                raise DeploymentTimeout(f"Timed out after {timeout:g}s waiting for {description}")
            self._sleep(interval)


# ---------------------------------------------------------------------------
# Lambda
# ---------------------------------------------------------------------------


def function_status(lambda_client: Any, function_arn: str) -> Tuple[Optional[str], Optional[str], str]:
    """Return (State, LastUpdateStatus, reason) for a function version."""
    try:
        response = lambda_client.get_function(FunctionName=function_arn)
    except (ClientError, BotoCoreError) as exc:
        raise RemoteLookupError("Error getting Lambda Function") from exc
    logger.debug("GetFunction Response: %s", response)

    configuration = response.get("Configuration")
    if not configuration:
        raise RemoteLookupError("Invalid GetFunction response: missing Configuration")
    reason = configuration.get("LastUpdateStatusReason") or configuration.get("StateReason") or ""
    return configuration.get("State"), configuration.get("LastUpdateStatus"), reason


def function_is_settled(state: Optional[str], last_update_status: Optional[str]) -> bool:
    return state == FUNCTION_ACTIVE and last_update_status == UPDATE_SUCCESSFUL


def await_function_active(
    lambda_client: Any,
    function_arn: str,
    waiter: Waiter,
    *,
    interval: float,
    timeout: Optional[float],
) -> None:
    def _check() -> bool:
        state, last_update, reason = function_status(lambda_client, function_arn)
        if state == FUNCTION_FAILED or last_update == UPDATE_FAILED:
            raise RemoteMutationError(
                f"Lambda Function {function_arn} failed to stabilize "
                f"(State={state}, LastUpdateStatus={last_update}): {reason}"
            )
        if function_is_settled(state, last_update):
            return True
        logger.info(f"[INFO] Waiting for {function_arn} deployment (State={state}, LastUpdateStatus={last_update})...")
        return False

    waiter.poll(f"Lambda Function {function_arn}", _check, interval=interval, timeout=timeout)
    logger.info(f"[SUCCESS] Lambda Function {function_arn} is active")


# ---------------------------------------------------------------------------
# CloudFront
# ---------------------------------------------------------------------------


def distribution_status(cloudfront_client: Any, distribution_id: str) -> str:
    try:
        response = cloudfront_client.get_distribution(Id=distribution_id)
    except (ClientError, BotoCoreError) as exc:
        raise RemoteLookupError("Error getting CloudFront Distribution") from exc
    logger.debug("GetDistribution Response: %s", response)

    distribution = response.get("Distribution") or {}
    status = distribution.get("Status")
    if not status or not distribution.get("Id"):
        raise RemoteLookupError("Distribution is missing properties")
    return status


def await_distribution_deployed(
    cloudfront_client: Any,
    distribution_id: str,
    waiter: Waiter,
    *,
    interval: float,
    timeout: Optional[float],
) -> None:
    def _check() -> bool:
        status = distribution_status(cloudfront_client, distribution_id)
        if status == DISTRIBUTION_DEPLOYED:
            return True
        logger.info(f"[INFO] CloudFront Distribution deployment status is {status}, waiting...")
        return False

    waiter.poll("CloudFront Distribution deployment", _check, interval=interval, timeout=timeout)
    logger.info("[SUCCESS] CloudFront Distribution has been deployed")
