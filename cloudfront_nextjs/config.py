"""config.py — Central configuration: constants, environment defaults, run config.

Module-level values may be overridden through the environment. The
reconciliation core never reads the environment itself: the CLI resolves
everything into a ``RouterConfig`` and passes it in.
"""

from __future__ import annotations

import base64
import datetime as dt
import os
import re
import uuid
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

__all__ = [
    "DISTRIBUTION_POLL_SECONDS",
    "DISTRIBUTION_WAIT_TIMEOUT_SECONDS",
    "EDGE_PRINCIPAL",
    "EDGE_REGION",
    "EVENT_TYPE",
    "FUNCTION_HANDLER",
    "FUNCTION_NAME_SUFFIX",
    "FUNCTION_POLL_SECONDS",
    "FUNCTION_WAIT_TIMEOUT_SECONDS",
    "PAGES_MANIFEST_PATH",
    "PERMISSION_STATEMENT_ID",
    "ROUTES_MANIFEST_PATH",
    "RUNTIME",
    "RouterConfig",
    "default_caller_reference",
    "default_function_name_prefix",
    "obfuscate",
]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Lambda@Edge functions and CloudFront control-plane calls live in us-east-1.
EDGE_REGION = "us-east-1"
RUNTIME = os.environ.get("EDGE_FUNCTION_RUNTIME", "python3.12")
FUNCTION_HANDLER = "index.handler"
FUNCTION_NAME_SUFFIX = "origin-request"
EVENT_TYPE = "origin-request"
EDGE_PRINCIPAL = "edgelambda.amazonaws.com"
PERMISSION_STATEMENT_ID = "AllowCloudFrontInvoke"

FUNCTION_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

ROUTES_MANIFEST_PATH = ".next/routes-manifest.json"
PAGES_MANIFEST_PATH = ".next/server/pages-manifest.json"

FUNCTION_POLL_SECONDS = float(os.environ.get("FUNCTION_POLL_SECONDS", "1"))
DISTRIBUTION_POLL_SECONDS = float(os.environ.get("DISTRIBUTION_POLL_SECONDS", "5"))
FUNCTION_WAIT_TIMEOUT_SECONDS = float(os.environ.get("FUNCTION_WAIT_TIMEOUT_SECONDS", "300"))
DISTRIBUTION_WAIT_TIMEOUT_SECONDS = float(os.environ.get("DISTRIBUTION_WAIT_TIMEOUT_SECONDS", "1800"))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def obfuscate(value: str) -> str:
    """Double-base64 an identifier so CI secret masking does not eat the log line."""
    once = base64.b64encode(value.encode("utf-8"))
    return base64.b64encode(once).decode("ascii")


def default_function_name_prefix(repository: str, distribution_id: str) -> str:
    """``owner/name`` + ``E123`` → ``name-E123-``."""
    name = (repository or "").split("/")[-1]
    return f"{name}-{distribution_id}-"


def default_caller_reference(env: Mapping[str, str]) -> str:
    run_id = (env.get("GITHUB_RUN_ID") or "").strip()
    run_number = (env.get("GITHUB_RUN_NUMBER") or "").strip()
    attempt = (env.get("GITHUB_RUN_ATTEMPT") or "").strip()
    if run_id and run_number:
        reference = f"{run_id}-{run_number}"
        if attempt:
            reference += f"-{attempt}"
        return reference
    stamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"local-{stamp}-{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouterConfig:
    distribution_id: str
    lambda_edge_role: str
    function_name_prefix: str
    working_directory: str = "."
    invalidate: Optional[str] = None
    wait_for_deployment: bool = True
    caller_reference: str = ""
    function_poll_seconds: float = FUNCTION_POLL_SECONDS
    distribution_poll_seconds: float = DISTRIBUTION_POLL_SECONDS
    # None waits forever.
    function_wait_timeout: Optional[float] = FUNCTION_WAIT_TIMEOUT_SECONDS
    distribution_wait_timeout: Optional[float] = DISTRIBUTION_WAIT_TIMEOUT_SECONDS

    @property
    def function_name(self) -> str:
        return f"{self.function_name_prefix}{FUNCTION_NAME_SUFFIX}"

    def validate(self) -> "RouterConfig":
        if not self.distribution_id.strip():
            raise ConfigurationError("Missing required input 'distribution-id'")
        if not self.lambda_edge_role.strip():
            raise ConfigurationError("Missing required input 'lambda-edge-role'")
        if not self.function_name_prefix.strip():
            raise ConfigurationError("Function name prefix must not be empty")
        if not FUNCTION_NAME_RE.match(self.function_name):
            raise ConfigurationError(f"Invalid Lambda function name: {self.function_name!r}")
        if self.invalidate is not None and not self.invalidate.startswith("/"):
            raise ConfigurationError(f"Invalidation path must start with '/': {self.invalidate!r}")
        if self.invalidate is not None and not self.caller_reference:
            raise ConfigurationError("An invalidation requires a caller reference")
        return self
