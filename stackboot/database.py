from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from pydantic import ValidationError

from .api_models import BucketSpec, QueryResponse
from .docker_ops import DockerOps
from .health import http_probe
from .readiness import RetryPolicy, wait_until_ready
from .resolver import AddressResolver
from .runtime import RunState
from .settings import Settings


logger = logging.getLogger(__name__)

COUCHBASE_SERVICE = "couchbase"
ADMIN_PORT = 8091
QUERY_PORT = 8093
COUCHBASE_CLI = "/opt/couchbase/bin/couchbase-cli"

# Must match the bucket names the application reads from its config template.
DEFAULT_BUCKETS = ("users", "users_pictures", "users_publishments")


class ProvisioningError(Exception):
    pass


@dataclass
class BootstrapReport:
    created_buckets: list[str] = field(default_factory=list)
    skipped_buckets: list[str] = field(default_factory=list)
    created_indexes: list[str] = field(default_factory=list)
    skipped_indexes: list[str] = field(default_factory=list)


def primary_index_statement(bucket: str) -> str:
    return f"CREATE PRIMARY INDEX ON {bucket}"


class DatabaseBootstrapper:
    """Creates the Couchbase buckets and primary indexes the application needs."""

    def __init__(
        self,
        docker_ops: DockerOps,
        client: httpx.Client,
        resolver: AddressResolver,
        settings: Settings,
        state: RunState | None = None,
    ) -> None:
        self.docker_ops = docker_ops
        self.client = client
        self.resolver = resolver
        self.settings = settings
        self.state = state or RunState()

    def wait_for_node(self) -> int:
        api = self.resolver.resolve(COUCHBASE_SERVICE, ADMIN_PORT)
        attempts = wait_until_ready(
            "couchbase node API",
            http_probe(self.client, api.url("/pools/nodes"), auth=self.settings.credentials),
            RetryPolicy.from_settings(self.settings, self.settings.db_poll_interval_s),
        )
        print()
        return attempts

    def bucket_exists(self, name: str) -> bool:
        api = self.resolver.resolve(COUCHBASE_SERVICE, ADMIN_PORT)
        try:
            resp = self.client.get(api.url(f"/pools/default/buckets/{name}"), auth=self.settings.credentials)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProvisioningError(f"Cannot query bucket {name}: {e}") from e
        if resp.status_code == 404:
            return False
        if resp.is_success:
            return True
        raise ProvisioningError(f"Checking bucket {name} returned HTTP {resp.status_code}")

    def _cli(self, command: str, *args: str) -> str:
        argv = [
            COUCHBASE_CLI,
            command,
            "-c",
            f"127.0.0.1:{ADMIN_PORT}",
            "-u",
            self.settings.couchbase_user,
            "-p",
            self.settings.couchbase_pass,
            *args,
        ]
        code, output = self.docker_ops.exec_in(COUCHBASE_SERVICE, argv)
        if code != 0:
            raise ProvisioningError(f"couchbase-cli {command} failed ({code}): {output.strip()}")
        return output

    def create_bucket(self, spec: BucketSpec) -> None:
        # Runs couchbase-cli inside the node so we never need the proxied REST port.
        # --wait blocks until the bucket is ready; index creation fails on a warming bucket.
        self._cli(
            "bucket-create",
            f"--bucket={spec.name}",
            f"--bucket-type={spec.bucket_type}",
            f"--bucket-ramsize={spec.ram_quota_mb}",
            f"--bucket-replica={spec.replicas}",
            "--wait",
        )
        self.state.log_event("INFO", f"Created bucket {spec.name}", service=COUCHBASE_SERVICE)

    def remove_bucket(self, name: str) -> None:
        self._cli("bucket-delete", f"--bucket={name}")
        self.state.log_event("INFO", f"Removed bucket {name}", service=COUCHBASE_SERVICE)

    def create_index(self, bucket: str) -> bool:
        """Create the bucket's primary index; False if it already existed."""
        statement = primary_index_statement(bucket)
        print(statement)
        n1ql = self.resolver.resolve(COUCHBASE_SERVICE, QUERY_PORT)
        try:
            resp = self.client.post(
                n1ql.url("/query/service"),
                data={"statement": statement},
                auth=self.settings.credentials,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProvisioningError(f"{statement} failed: {e}") from e

        if resp.is_success:
            self.state.log_event("INFO", f"Created primary index on {bucket}", service=COUCHBASE_SERVICE)
            return True

        try:
            body = QueryResponse.model_validate(resp.json())
        except (ValueError, ValidationError):
            body = QueryResponse(status=f"HTTP {resp.status_code}")
        if body.already_exists():
            self.state.log_event("INFO", f"Primary index on {bucket} already exists", service=COUCHBASE_SERVICE)
            return False
        raise ProvisioningError(f"{statement} failed with HTTP {resp.status_code}: {body.describe()}")

    def bootstrap(self, buckets: tuple[str, ...] | list[str] = DEFAULT_BUCKETS) -> BootstrapReport:
        report = BootstrapReport()
        print()
        print("Creating Couchbase buckets")
        self.wait_for_node()

        for name in buckets:
            if self.bucket_exists(name):
                self.state.log_event("INFO", f"Bucket {name} already exists; skipping", service=COUCHBASE_SERVICE)
                report.skipped_buckets.append(name)
                continue
            self.create_bucket(BucketSpec(name=name, ram_quota_mb=self.settings.cb_ram_quota))
            report.created_buckets.append(name)

        print("Creating Couchbase indexes")
        for name in buckets:
            if self.create_index(name):
                report.created_indexes.append(name)
            else:
                report.skipped_indexes.append(name)
        return report
