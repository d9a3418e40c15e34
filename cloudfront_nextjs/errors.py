"""errors.py — Error taxonomy for the CloudFront/Lambda@Edge reconciler.

Every fatal condition is a ``RouterError``. The underlying exception (usually a
botocore ``ClientError``) is attached with ``raise ... from exc`` and rendered
by ``describe_failure`` for the top-level failure message.
"""

from __future__ import annotations

from typing import Optional

from botocore.exceptions import ClientError

__all__ = [
    "ConcurrencyConflictError",
    "ConfigurationError",
    "DeploymentTimeout",
    "ManifestReadError",
    "PackageWriteError",
    "RemoteLookupError",
    "RemoteMutationError",
    "RouterError",
    "describe_failure",
    "error_code",
]


class RouterError(Exception):
    """Base class for all fatal reconciliation errors."""

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.__class__.__name__

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause__


class ConfigurationError(RouterError):
    """Required input is missing or malformed."""


class ManifestReadError(RouterError):
    """A build manifest is absent, unreadable or malformed."""


class PackageWriteError(RouterError):
    """The deployment package could not be written to local disk."""


class RemoteLookupError(RouterError):
    """A remote read failed for a reason other than "not found"."""


class RemoteMutationError(RouterError):
    """A create/update/publish/permission/bind/invalidate call failed."""


class ConcurrencyConflictError(RemoteMutationError):
    """The distribution ETag went stale between read and conditional write."""


class DeploymentTimeout(RouterError):
    """A remote resource did not reach its terminal state in time."""


def error_code(exc: BaseException) -> str:
    """Return the AWS error code of a ``ClientError``, or ``""``."""
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code") or "")
    return ""


def _cause_text(exc: BaseException) -> str:
    if isinstance(exc, RouterError):
        return exc.message
    return str(exc) or exc.__class__.__name__


def describe_failure(exc: BaseException) -> str:
    """Render ``Error: <message>[, Caused by: <cause>]`` for the run summary."""
    message = _cause_text(exc)
    cause = exc.__cause__
    if cause is not None:
        return f"Error: {message}, Caused by: {_cause_text(cause)}"
    return f"Error: {message}"
