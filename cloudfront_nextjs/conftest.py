"""Shared fakes for the Lambda and CloudFront clients.

The fakes keep just enough state to behave like the real services for the
calls the reconciler makes, and record every call so tests can assert which
mutations were issued.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest
from botocore.exceptions import ClientError

from cloudfront_nextjs.payload import sha256_digest
from cloudfront_nextjs.waiter import Waiter

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"

LAMBDA_MUTATIONS = {"create_function", "update_function_code", "add_permission"}
CLOUDFRONT_MUTATIONS = {"update_distribution", "create_invalidation"}


def client_error(code: str, operation: str, message: str = "fake failure") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class _RecordingClient:
    mutations: set = set()

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._failures: Dict[str, ClientError] = {}

    def fail(self, operation: str, code: str, message: str = "fake failure") -> None:
        self._failures[operation] = client_error(code, operation, message)

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))
        failure = self._failures.pop(operation, None)
        if failure is not None:
            raise failure

    def operations(self) -> List[str]:
        return [name for name, _ in self.calls]

    def mutating_calls(self) -> List[str]:
        return [name for name, _ in self.calls if name in self.mutations]


class FakeLambda(_RecordingClient):
    mutations = LAMBDA_MUTATIONS

    def __init__(self, activation_polls: int = 0, page_size: int = 50) -> None:
        super().__init__()
        self.activation_polls = activation_polls
        self.page_size = page_size
        self.functions: Dict[str, Dict[str, Any]] = {}
        self.permissions: set = set()

    # -- helpers ---------------------------------------------------------

    def arn(self, name: str, qualifier: Optional[str] = None) -> str:
        base = f"arn:aws:lambda:{REGION}:{ACCOUNT_ID}:function:{name}"
        return f"{base}:{qualifier}" if qualifier else base

    def _split(self, function_name: str) -> Tuple[str, Optional[str]]:
        if function_name.startswith("arn:"):
            parts = function_name.split(":")
            return parts[6], parts[7] if len(parts) > 7 else None
        if ":" in function_name:
            name, qualifier = function_name.split(":", 1)
            return name, qualifier
        return function_name, None

    def _config(self, name: str, version: str, code_sha: str, *, settled: bool) -> Dict[str, Any]:
        return {
            "FunctionName": name,
            "FunctionArn": self.arn(name, None if version == "$LATEST" else version),
            "Version": version,
            "CodeSha256": code_sha,
            "State": "Active" if settled else "Pending",
            "LastUpdateStatus": "Successful" if settled else "InProgress",
            "_polls_left": 0 if settled else self.activation_polls,
        }

    def _publish(self, name: str) -> Dict[str, Any]:
        function = self.functions[name]
        latest = function["latest"]
        versions = function["versions"]
        if versions and versions[-1]["CodeSha256"] == latest["CodeSha256"]:
            return versions[-1]
        version = str(len(versions) + 1)
        published = self._config(name, version, latest["CodeSha256"], settled=self.activation_polls == 0)
        versions.append(published)
        return published

    def seed(self, name: str, code: bytes, *, published: bool = True, **latest_overrides: Any) -> None:
        """Put an existing function in place without recording calls."""
        latest = self._config(name, "$LATEST", sha256_digest(code), settled=True)
        latest.update(latest_overrides)
        self.functions[name] = {"latest": latest, "versions": []}
        if published:
            self.functions[name]["versions"].append(self._config(name, "1", latest["CodeSha256"], settled=True))

    @staticmethod
    def _public(config: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in config.items() if not k.startswith("_")}

    # -- boto3 surface ---------------------------------------------------

    def get_function(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_function", **kwargs)
        name, qualifier = self._split(kwargs["FunctionName"])
        function = self.functions.get(name)
        if function is None:
            raise client_error("ResourceNotFoundException", "GetFunction", f"Function not found: {name}")
        if qualifier in (None, "$LATEST"):
            config = function["latest"]
        else:
            matches = [v for v in function["versions"] if v["Version"] == qualifier]
            if not matches:
                raise client_error("ResourceNotFoundException", "GetFunction", f"Version not found: {qualifier}")
            config = matches[0]
        if config["State"] == "Pending" or config["LastUpdateStatus"] == "InProgress":
            if config["_polls_left"] <= 0:
                config.update(State="Active", LastUpdateStatus="Successful")
            else:
                config["_polls_left"] -= 1
        return {"Configuration": self._public(config)}

    def list_versions_by_function(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("list_versions_by_function", **kwargs)
        name, _ = self._split(kwargs["FunctionName"])
        function = self.functions[name]
        everything = [function["latest"]] + function["versions"]
        start = int(kwargs.get("Marker") or 0)
        page = everything[start : start + self.page_size]
        response: Dict[str, Any] = {"Versions": [self._public(c) for c in page]}
        if start + self.page_size < len(everything):
            response["NextMarker"] = str(start + self.page_size)
        return response

    def create_function(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("create_function", **kwargs)
        name = kwargs["FunctionName"]
        if name in self.functions:
            raise client_error("ResourceConflictException", "CreateFunction")
        latest = self._config(name, "$LATEST", sha256_digest(kwargs["Code"]["ZipFile"]), settled=True)
        self.functions[name] = {"latest": latest, "versions": []}
        result = self._publish(name) if kwargs.get("Publish") else latest
        return self._public(result)

    def update_function_code(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("update_function_code", **kwargs)
        name = kwargs["FunctionName"]
        latest = self.functions[name]["latest"]
        latest.update(CodeSha256=sha256_digest(kwargs["ZipFile"]), State="Active", LastUpdateStatus="Successful")
        result = self._publish(name) if kwargs.get("Publish") else latest
        return self._public(result)

    def add_permission(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("add_permission", **kwargs)
        key = (kwargs["FunctionName"], kwargs["StatementId"])
        if key in self.permissions:
            raise client_error("ResourceConflictException", "AddPermission", "statement already exists")
        self.permissions.add(key)
        return {"Statement": "{}"}


class FakeCloudFront(_RecordingClient):
    mutations = CLOUDFRONT_MUTATIONS

    def __init__(self, associations: Optional[Dict[str, Any]] = None, deploy_polls: int = 0) -> None:
        super().__init__()
        self.distribution_id = "E2EXAMPLE"
        self.etag = "ETAG1"
        self.status = "Deployed"
        self.deploy_polls = deploy_polls
        self._polls_left = 0
        self.concurrent_edit = False
        self.invalidations: List[Dict[str, Any]] = []
        self.config: Dict[str, Any] = {
            "CallerReference": "seed",
            "Comment": "next.js export",
            "Enabled": True,
            "Origins": {"Quantity": 1, "Items": [{"Id": "s3", "DomainName": "bucket.s3.amazonaws.com"}]},
            "DefaultCacheBehavior": {
                "TargetOriginId": "s3",
                "ViewerProtocolPolicy": "redirect-to-https",
                "LambdaFunctionAssociations": associations or {"Quantity": 0},
            },
        }

    def get_distribution_config(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_distribution_config", **kwargs)
        response = {"DistributionConfig": copy.deepcopy(self.config), "ETag": self.etag}
        if self.concurrent_edit:
            # Someone else writes between our read and our conditional write.
            self.etag = self.etag + "-other"
        return response

    def update_distribution(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("update_distribution", **kwargs)
        if kwargs["IfMatch"] != self.etag:
            raise client_error("PreconditionFailed", "UpdateDistribution", "The If-Match version is stale")
        self.config = copy.deepcopy(kwargs["DistributionConfig"])
        self.etag = self.etag + "+"
        self.status = "InProgress"
        self._polls_left = self.deploy_polls
        return {"Distribution": {"Id": kwargs["Id"], "Status": self.status}, "ETag": self.etag}

    def get_distribution(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_distribution", **kwargs)
        if self.status != "Deployed":
            if self._polls_left <= 0:
                self.status = "Deployed"
            else:
                self._polls_left -= 1
        return {"Distribution": {"Id": kwargs["Id"], "Status": self.status}}

    def create_invalidation(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("create_invalidation", **kwargs)
        self.invalidations.append(kwargs["InvalidationBatch"])
        return {"Invalidation": {"Id": f"I{len(self.invalidations)}", "Status": "InProgress"}}

    def associations(self) -> Dict[str, Any]:
        return self.config["DefaultCacheBehavior"]["LambdaFunctionAssociations"]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def monotonic(self) -> float:
        return self.now


@pytest.fixture
def fake_lambda() -> FakeLambda:
    return FakeLambda()


@pytest.fixture
def fake_cloudfront() -> FakeCloudFront:
    return FakeCloudFront()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def waiter(clock: FakeClock) -> Waiter:
    return Waiter(sleep=clock.sleep, monotonic=clock.monotonic)
