"""distribution.py — Bind the function to the distribution and invalidate its cache.

Only the default cache behavior is managed. Its ``LambdaFunctionAssociations``
must be exactly one ``origin-request`` association pointing at the reconciled
function version. The write is conditional on the ETag read just before it;
a stale ETag means someone else changed the distribution and the run stops.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .config import EVENT_TYPE
from .errors import ConcurrencyConflictError, RemoteLookupError, RemoteMutationError, error_code
from .waiter import Waiter, await_distribution_deployed

logger = logging.getLogger(__name__)

_STALE_ETAG_CODES = {"PreconditionFailed", "InvalidIfMatchVersion"}


def desired_associations(function_arn: str) -> Dict[str, Any]:
    return {
        "Quantity": 1,
        "Items": [
            {
                "EventType": EVENT_TYPE,
                "LambdaFunctionARN": function_arn,
                "IncludeBody": False,
            }
        ],
    }


def association_matches(current: Optional[Dict[str, Any]], function_arn: str) -> bool:
    """True when ``current`` is exactly one origin-request association for ``function_arn``."""
    if not current:
        return False
    items = current.get("Items") or []
    return (
        current.get("Quantity") == 1
        and len(items) == 1
        and items[0].get("EventType") == EVENT_TYPE
        and items[0].get("LambdaFunctionARN") == function_arn
    )


def read_distribution_config(cloudfront_client: Any, distribution_id: str) -> Dict[str, Any]:
    """Return ``{"DistributionConfig": ..., "ETag": ...}``."""
    try:
        response = cloudfront_client.get_distribution_config(Id=distribution_id)
    except (ClientError, BotoCoreError) as exc:
        raise RemoteLookupError("Error reading CloudFront Distribution config") from exc

    config = response.get("DistributionConfig")
    etag = response.get("ETag")
    if not config or not etag or not config.get("DefaultCacheBehavior"):
        raise RemoteLookupError("DistributionConfig is missing properties")
    return {"DistributionConfig": config, "ETag": etag}


def bind_function(
    cloudfront_client: Any,
    distribution_id: str,
    function_arn: str,
    waiter: Waiter,
    *,
    wait: bool = True,
    poll_seconds: float = 5,
    timeout: Optional[float] = None,
) -> bool:
    """Point the default cache behavior at ``function_arn``. Returns True if it was updated."""
    logger.info(f"[INFO] Ensuring CloudFront has an Origin Request with Function ARN: {function_arn}")

    current = read_distribution_config(cloudfront_client, distribution_id)
    distribution_config = current["DistributionConfig"]
    behavior = distribution_config["DefaultCacheBehavior"]

    if association_matches(behavior.get("LambdaFunctionAssociations"), function_arn):
        logger.info("[SKIP] Lambda Function has not changed, skipping update...")
        return False

    updated_config = copy.deepcopy(distribution_config)
    updated_config["DefaultCacheBehavior"]["LambdaFunctionAssociations"] = desired_associations(function_arn)
    logger.info("[INFO] Updating Lambda Function Associations for the Default Cache Behavior")

    try:
        response = cloudfront_client.update_distribution(
            Id=distribution_id,
            DistributionConfig=updated_config,
            IfMatch=current["ETag"],
        )
    except ClientError as exc:
        if error_code(exc) in _STALE_ETAG_CODES:
            raise ConcurrencyConflictError(
                "CloudFront Distribution was modified concurrently; re-run once the other change has finished"
            ) from exc
        raise RemoteMutationError("Error updating CloudFront Distribution") from exc
    except BotoCoreError as exc:
        raise RemoteMutationError("Error updating CloudFront Distribution") from exc

    logger.debug("UpdateDistribution Response: %s", response.get("Distribution", {}).get("Status"))
    logger.info("[SUCCESS] CloudFront Distribution updated")

    if wait:
        await_distribution_deployed(
            cloudfront_client, distribution_id, waiter, interval=poll_seconds, timeout=timeout
        )
    return True


def invalidate_path(
    cloudfront_client: Any,
    distribution_id: str,
    path: str,
    caller_reference: str,
    waiter: Waiter,
    *,
    wait: bool = True,
    poll_seconds: float = 5,
    timeout: Optional[float] = None,
) -> str:
    """Invalidate one path pattern. Returns the invalidation id."""
    logger.info(f"[INFO] Invalidating CloudFront Distribution path: {path}")
    try:
        response = cloudfront_client.create_invalidation(
            DistributionId=distribution_id,
            InvalidationBatch={
                "Paths": {"Quantity": 1, "Items": [path]},
                "CallerReference": caller_reference,
            },
        )
    except (ClientError, BotoCoreError) as exc:
        raise RemoteMutationError("Error invalidating CloudFront Distribution") from exc

    invalidation = response.get("Invalidation") or {}
    if not invalidation.get("Id") or not invalidation.get("Status"):
        raise RemoteMutationError("Invalidation is missing properties")
    logger.info(f"[SUCCESS] Invalidation created: {invalidation['Id']}, status: {invalidation['Status']}")

    if wait:
        await_distribution_deployed(
            cloudfront_client, distribution_id, waiter, interval=poll_seconds, timeout=timeout
        )
    return str(invalidation["Id"])
