"""edge_function.py — Reconcile the Lambda@Edge function with the local package.

The remote function is in one of three states:

    Absent          get_function → ResourceNotFoundException   → create + publish
    PresentStale    latest published CodeSha256 != local digest → update code + publish
    PresentCurrent  latest published CodeSha256 == local digest → no-op

Digests are compared against the latest *published* version, never against
``$LATEST``: CloudFront can only bind a numbered version, so that is the code
actually serving traffic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from . import __version__
from .config import (
    EDGE_PRINCIPAL,
    FUNCTION_HANDLER,
    PERMISSION_STATEMENT_ID,
    RUNTIME,
    RouterConfig,
)
from .errors import RemoteLookupError, RemoteMutationError, error_code
from .payload import DeployablePayload
from .waiter import Waiter, await_function_active

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_UNCHANGED = "unchanged"

LATEST = "$LATEST"


@dataclass(frozen=True)
class RemoteFunctionState:
    arn: str
    content_digest: Optional[str]
    lifecycle_state: Optional[str]
    last_update_status: Optional[str]
    version: Optional[str] = None


@dataclass(frozen=True)
class FunctionReconciliation:
    arn: str
    digest: str
    changed: bool
    action: str


def digests_match(local: Optional[str], remote: Optional[str]) -> bool:
    """Trimmed, case-sensitive equality; an absent digest never matches."""
    local = (local or "").strip()
    remote = (remote or "").strip()
    return bool(local) and local == remote


def _qualified_arn(configuration: Dict[str, Any]) -> str:
    arn = str(configuration.get("FunctionArn") or "")
    version = str(configuration.get("Version") or "")
    if arn and version and version != LATEST and not arn.endswith(f":{version}"):
        return f"{arn}:{version}"
    return arn


def _version_number(configuration: Dict[str, Any]) -> int:
    try:
        return int(str(configuration.get("Version")))
    except ValueError:
        return -1


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def latest_published_version(lambda_client: Any, function_name: str) -> Optional[Dict[str, Any]]:
    """Highest numbered version of the function, or None if nothing is published."""
    latest: Optional[Dict[str, Any]] = None
    kwargs: Dict[str, Any] = {"FunctionName": function_name}
    try:
        while True:
            resp = lambda_client.list_versions_by_function(**kwargs)
            for configuration in resp.get("Versions", []):
                if configuration.get("Version") == LATEST:
                    continue
                if latest is None or _version_number(configuration) > _version_number(latest):
                    latest = configuration
            if not resp.get("NextMarker"):
                break
            kwargs["Marker"] = resp["NextMarker"]
    except (ClientError, BotoCoreError) as exc:
        raise RemoteLookupError(f"Error listing versions of Lambda Function {function_name}") from exc
    return latest


def lookup_function(lambda_client: Any, function_name: str) -> Optional[RemoteFunctionState]:
    """Read the remote function. ``None`` means it does not exist."""
    try:
        response = lambda_client.get_function(FunctionName=function_name)
    except ClientError as exc:
        if error_code(exc) == "ResourceNotFoundException":
            logger.info(f"[INFO] Lambda Function {function_name} does not exist yet")
            return None
        raise RemoteLookupError(f"Error getting Lambda Function {function_name}") from exc
    except BotoCoreError as exc:
        raise RemoteLookupError(f"Error getting Lambda Function {function_name}") from exc

    logger.debug("GetFunction Response: %s", response)
    configuration = response.get("Configuration") or {}
    if not configuration.get("FunctionArn"):
        raise RemoteLookupError("FunctionArn was missing from the GetFunction response")

    # State of the function as a whole gates further code updates.
    lifecycle_state = configuration.get("State")
    last_update_status = configuration.get("LastUpdateStatus")

    published = latest_published_version(lambda_client, function_name)
    if published is None:
        logger.info("[INFO] Existing function has no published version")
        return RemoteFunctionState(
            arn=str(configuration["FunctionArn"]),
            content_digest=None,
            lifecycle_state=lifecycle_state,
            last_update_status=last_update_status,
        )

    state = RemoteFunctionState(
        arn=_qualified_arn(published),
        content_digest=published.get("CodeSha256"),
        lifecycle_state=lifecycle_state,
        last_update_status=last_update_status,
        version=str(published.get("Version")),
    )
    logger.info(f"[INFO] Existing Function ARN: {state.arn}")
    logger.info(f"[INFO] Existing Function SHA: {state.content_digest}")
    return state


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _published(response: Dict[str, Any], operation: str) -> Dict[str, str]:
    logger.debug("%s Response: %s", operation, {k: v for k, v in response.items() if k != "ResponseMetadata"})
    arn = _qualified_arn(response)
    code_sha = response.get("CodeSha256")
    if not arn or not code_sha:
        raise RemoteMutationError(f"FunctionArn or CodeSha256 was missing from the {operation} response")
    return {"arn": arn, "digest": str(code_sha)}


def create_function(lambda_client: Any, config: RouterConfig, payload: DeployablePayload) -> Dict[str, str]:
    try:
        response = lambda_client.create_function(
            FunctionName=config.function_name,
            Role=config.lambda_edge_role,
            Runtime=RUNTIME,
            Handler=FUNCTION_HANDLER,
            Code={"ZipFile": payload.data},
            Description=f"CloudFront Origin Request for Next.js (cloudfront-nextjs {__version__})",
            Publish=True,
        )
    except (ClientError, BotoCoreError) as exc:
        raise RemoteMutationError("Error creating Lambda Function") from exc
    published = _published(response, "CreateFunction")
    logger.info(f"[SUCCESS] Function created: {published['arn']}, sha is {published['digest']}")
    return published


def update_function_code(lambda_client: Any, config: RouterConfig, payload: DeployablePayload) -> Dict[str, str]:
    try:
        response = lambda_client.update_function_code(
            FunctionName=config.function_name,
            ZipFile=payload.data,
            Publish=True,
        )
    except (ClientError, BotoCoreError) as exc:
        raise RemoteMutationError("Error uploading Lambda Function") from exc
    published = _published(response, "UpdateFunctionCode")
    logger.info(f"[SUCCESS] Function code updated: {published['arn']}, new sha is {published['digest']}")
    return published


def reconcile_function(
    lambda_client: Any,
    config: RouterConfig,
    payload: DeployablePayload,
    waiter: Waiter,
) -> FunctionReconciliation:
    """Create, update or leave the function, then wait for the version to go active."""
    logger.info("[INFO] Uploading Lambda Function...")
    name = config.function_name
    remote = lookup_function(lambda_client, name)

    if remote is None:
        published = create_function(lambda_client, config, payload)
        result = FunctionReconciliation(published["arn"], published["digest"], True, ACTION_CREATED)
    elif digests_match(payload.digest, remote.content_digest):
        logger.info("[SKIP] Function code has not changed, skipping upload")
        result = FunctionReconciliation(remote.arn, str(remote.content_digest), False, ACTION_UNCHANGED)
    else:
        if remote.lifecycle_state == "Pending" or remote.last_update_status == "InProgress":
            logger.info("[INFO] A previous update is still in progress, waiting before uploading")
            await_function_active(
                lambda_client,
                name,
                waiter,
                interval=config.function_poll_seconds,
                timeout=config.function_wait_timeout,
            )
        published = update_function_code(lambda_client, config, payload)
        result = FunctionReconciliation(published["arn"], published["digest"], True, ACTION_UPDATED)

    await_function_active(
        lambda_client,
        result.arn,
        waiter,
        interval=config.function_poll_seconds,
        timeout=config.function_wait_timeout,
    )
    return result


def ensure_permission(lambda_client: Any, function_arn: str) -> bool:
    """Let the edge service invoke ``function_arn``. Returns False if already granted."""
    try:
        response = lambda_client.add_permission(
            FunctionName=function_arn,
            StatementId=PERMISSION_STATEMENT_ID,
            Action="lambda:InvokeFunction",
            Principal=EDGE_PRINCIPAL,
        )
    except ClientError as exc:
        if error_code(exc) == "ResourceConflictException":
            logger.info("[SKIP] Invoke permission already granted")
            return False
        raise RemoteMutationError("Error granting invoke permission to Lambda Function") from exc
    except BotoCoreError as exc:
        raise RemoteMutationError("Error granting invoke permission to Lambda Function") from exc
    logger.debug("AddPermission Response: %s", response)
    logger.info(f"[SUCCESS] Granted {EDGE_PRINCIPAL} permission to invoke {function_arn}")
    return True
