#!/usr/bin/env python3
"""Route a Next.js export through a CloudFront Lambda@Edge origin-request function.

Designed for GitHub Actions. Reads the build manifests from the working
directory, reconciles the ``<prefix>origin-request`` function in us-east-1,
binds it to the distribution's default cache behavior and, when nothing
changed, optionally invalidates a cache path.

Exit codes: 0 on success, 1 on any fatal error.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Mapping, Optional

from . import __version__, aws_clients
from .config import (
    DISTRIBUTION_WAIT_TIMEOUT_SECONDS,
    FUNCTION_WAIT_TIMEOUT_SECONDS,
    RouterConfig,
    default_caller_reference,
    default_function_name_prefix,
    obfuscate,
)
from .errors import RouterError, describe_failure
from .manifests import read_manifests
from .payload import make_scratch_dir
from .reconcile import plan, run

logger = logging.getLogger(__name__)

_NOISY_LOGGERS = ("boto3", "botocore", "urllib3", "s3transfer")


def _timeout(value: float) -> Optional[float]:
    # 0 waits forever.
    return None if value <= 0 else value


def build_parser(env: Mapping[str, str] = os.environ) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudfront-nextjs",
        description="Update a CloudFront Distribution to route a Next.js app through Lambda@Edge.",
    )
    parser.add_argument("--distribution-id", default=env.get("AWS_DISTRIBUTION_ID", ""))
    parser.add_argument("--lambda-edge-role", default=env.get("AWS_LAMBDA_EDGE_ROLE", ""))
    parser.add_argument(
        "--function-name-prefix",
        default="",
        help="Defaults to '{repositoryName}-{distributionId}-'.",
    )
    parser.add_argument("--working-directory", default=".")
    parser.add_argument(
        "--invalidate",
        default="",
        help="Invalidate this path (e.g. '/*') when the function code did not change.",
    )
    parser.add_argument(
        "--wait",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Wait for the CloudFront deployment before exiting.",
    )
    parser.add_argument("--wait-timeout", type=float, default=DISTRIBUTION_WAIT_TIMEOUT_SECONDS)
    parser.add_argument("--function-wait-timeout", type=float, default=FUNCTION_WAIT_TIMEOUT_SECONDS)
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--debug", action="store_true", default=env.get("RUNNER_DEBUG") == "1")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace, env: Mapping[str, str] = os.environ) -> RouterConfig:
    distribution_id = args.distribution_id.strip()
    prefix = args.function_name_prefix.strip() or default_function_name_prefix(
        env.get("GITHUB_REPOSITORY", ""), distribution_id
    )
    invalidate = args.invalidate.strip() or None
    return RouterConfig(
        distribution_id=distribution_id,
        lambda_edge_role=args.lambda_edge_role.strip(),
        function_name_prefix=prefix,
        working_directory=args.working_directory,
        invalidate=invalidate,
        wait_for_deployment=args.wait,
        caller_reference=default_caller_reference(env),
        function_wait_timeout=_timeout(args.function_wait_timeout),
        distribution_wait_timeout=_timeout(args.wait_timeout),
    ).validate()


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format="%(message)s")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _report_failure(message: str, env: Mapping[str, str]) -> None:
    logger.error(f"[ERROR] {message}")
    if env.get("GITHUB_ACTIONS") == "true":
        print(f"::error::{message}", file=sys.stdout)


def main(argv: Optional[List[str]] = None, env: Mapping[str, str] = os.environ) -> int:
    args = build_parser(env).parse_args(argv)
    _configure_logging(args.debug)

    try:
        config = config_from_args(args, env)
        # Double base64 so the values survive CI secret masking.
        logger.debug(f"distributionId: {obfuscate(config.distribution_id)}")
        logger.debug(f"lambdaEdgeRole: {obfuscate(config.lambda_edge_role)}")

        routes_manifest, pages_manifest = read_manifests(config.working_directory)
        scratch_dir = make_scratch_dir(config.distribution_id)
        lambda_client = aws_clients._get_lambda()
        cloudfront_client = aws_clients._get_cloudfront()

        if args.dry_run:
            plan(
                config,
                routes_manifest,
                pages_manifest,
                lambda_client=lambda_client,
                cloudfront_client=cloudfront_client,
                scratch_dir=scratch_dir,
            )
            return 0

        run(
            config,
            routes_manifest,
            pages_manifest,
            lambda_client=lambda_client,
            cloudfront_client=cloudfront_client,
            scratch_dir=scratch_dir,
        )
    except RouterError as exc:
        logger.debug("Failure details", exc_info=exc)
        _report_failure(describe_failure(exc), env)
        return 1

    logger.info("[SUCCESS] CloudFront Distribution routes the Next.js app")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
