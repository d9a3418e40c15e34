"""aws_clients.py — Lazy-singleton AWS service clients.

Provides factory functions that create boto3 clients on first call and cache
them for the rest of the run. The reconciliation core takes clients as
arguments; only the CLI goes through these factories.
"""

from __future__ import annotations

import boto3
from botocore.config import Config

from .config import EDGE_REGION

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_lambda = None
_cloudfront = None

_RETRY_CONFIG = Config(retries={"max_attempts": 5, "mode": "standard"})


def _get_lambda():
    """Get (or create) the Lambda client singleton."""
    global _lambda
    if _lambda is None:
        _lambda = boto3.client(
            "lambda",
            region_name=EDGE_REGION,
            config=_RETRY_CONFIG,
        )
    return _lambda


def _get_cloudfront():
    """Get (or create) the CloudFront client singleton."""
    global _cloudfront
    if _cloudfront is None:
        _cloudfront = boto3.client(
            "cloudfront",
            region_name=EDGE_REGION,
            config=_RETRY_CONFIG,
        )
    return _cloudfront


def _reset_clients() -> None:
    global _lambda, _cloudfront
    _lambda = None
    _cloudfront = None
