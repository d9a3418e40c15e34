"""reconcile.py — Run the full reconciliation for one distribution.

Flow:
    manifests
    → synthesize deployment package
    → create / update / keep the Lambda@Edge function (await active)
    → grant edgelambda.amazonaws.com invoke permission
    → bind the version to the default cache behavior (await Deployed)
    → invalidate the cache path, only if the function did not change

Every step re-reads remote state and is idempotent on its own, so a run that
died halfway is finished by the next one. Nothing is rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config import RouterConfig
from .distribution import association_matches, bind_function, invalidate_path, read_distribution_config
from .edge_function import (
    ACTION_CREATED,
    ACTION_UNCHANGED,
    ACTION_UPDATED,
    FunctionReconciliation,
    digests_match,
    ensure_permission,
    lookup_function,
    reconcile_function,
)
from .payload import DeployablePayload, synthesize
from .waiter import Waiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    function: FunctionReconciliation
    permission_granted: bool
    distribution_updated: bool
    invalidation_id: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.function.changed or self.distribution_updated


@dataclass(frozen=True)
class Plan:
    payload: DeployablePayload
    function_action: str
    function_arn: Optional[str]
    # None when the version to bind is only known after an upload.
    binding_changes: Optional[bool]
    would_invalidate: bool


def run(
    config: RouterConfig,
    routes_manifest: Dict[str, Any],
    pages_manifest: Dict[str, str],
    *,
    lambda_client: Any,
    cloudfront_client: Any,
    waiter: Optional[Waiter] = None,
    scratch_dir: Optional[Path] = None,
) -> RunResult:
    waiter = waiter or Waiter()

    payload = synthesize(routes_manifest, pages_manifest, scratch_dir)
    function = reconcile_function(lambda_client, config, payload, waiter)
    granted = ensure_permission(lambda_client, function.arn)
    updated = bind_function(
        cloudfront_client,
        config.distribution_id,
        function.arn,
        waiter,
        wait=config.wait_for_deployment,
        poll_seconds=config.distribution_poll_seconds,
        timeout=config.distribution_wait_timeout,
    )

    invalidation_id = None
    if not function.changed and config.invalidate:
        invalidation_id = invalidate_path(
            cloudfront_client,
            config.distribution_id,
            config.invalidate,
            config.caller_reference,
            waiter,
            wait=config.wait_for_deployment,
            poll_seconds=config.distribution_poll_seconds,
            timeout=config.distribution_wait_timeout,
        )
    elif config.invalidate:
        logger.info("[SKIP] Function changed; the distribution update refreshes edge behavior, not invalidating")

    result = RunResult(
        function=function,
        permission_granted=granted,
        distribution_updated=updated,
        invalidation_id=invalidation_id,
    )
    logger.info(
        f"[END] function={function.action} permission_granted={granted} "
        f"distribution_updated={updated} invalidation={invalidation_id or '-'}"
    )
    return result


def plan(
    config: RouterConfig,
    routes_manifest: Dict[str, Any],
    pages_manifest: Dict[str, str],
    *,
    lambda_client: Any,
    cloudfront_client: Any,
    scratch_dir: Optional[Path] = None,
) -> Plan:
    """Dry run: the same decisions as ``run``, made with reads only."""
    payload = synthesize(routes_manifest, pages_manifest, scratch_dir)
    remote = lookup_function(lambda_client, config.function_name)

    if remote is None:
        action, arn = ACTION_CREATED, None
    elif digests_match(payload.digest, remote.content_digest):
        action, arn = ACTION_UNCHANGED, remote.arn
    else:
        action, arn = ACTION_UPDATED, None

    binding_changes: Optional[bool] = None
    if arn is not None:
        current = read_distribution_config(cloudfront_client, config.distribution_id)
        behavior = current["DistributionConfig"]["DefaultCacheBehavior"]
        binding_changes = not association_matches(behavior.get("LambdaFunctionAssociations"), arn)

    result = Plan(
        payload=payload,
        function_action=action,
        function_arn=arn,
        binding_changes=binding_changes,
        would_invalidate=bool(config.invalidate) and action == ACTION_UNCHANGED,
    )
    logger.info(
        f"[DRY-RUN] function={action} binding_changes="
        f"{'unknown' if binding_changes is None else binding_changes} "
        f"invalidate={result.would_invalidate}"
    )
    return result
