from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


DUPLICATE_INDEX_CODE = 4300


class TritonInstance(BaseModel):
    """Subset of `triton instance get -j` output."""

    id: str = ""
    name: str = ""
    state: str = ""
    ips: list[str] = Field(default_factory=list)
    dns_names: list[str] = Field(default_factory=list)

    def svc_dns_name(self) -> str | None:
        # CNS publishes both per-instance and per-service records; prefer the service one.
        svc = [n for n in self.dns_names if ".svc." in n]
        return svc[-1] if svc else None

    def fallback_ip(self) -> str | None:
        # ips[0] is usually the public NIC, ips[1] the fabric network
        if len(self.ips) > 1:
            return self.ips[1]
        return self.ips[0] if self.ips else None


class TritonProfile(BaseModel):
    name: str = ""
    account: str = ""
    url: str = ""

    def data_center(self) -> str:
        return data_center_from_url(self.url)


class TritonAccount(BaseModel):
    login: str = ""
    triton_cns_enabled: bool = False


class QueryError(BaseModel):
    code: int = 0
    msg: str = ""


class QueryResponse(BaseModel):
    status: str = ""
    errors: list[QueryError] = Field(default_factory=list)
    results: list[Any] = Field(default_factory=list)

    def already_exists(self) -> bool:
        return any(e.code == DUPLICATE_INDEX_CODE or "already exist" in e.msg.lower() for e in self.errors)

    def describe(self) -> str:
        if not self.errors:
            return self.status or "no detail"
        return "; ".join(f"{e.code}: {e.msg}" for e in self.errors)


class BucketSpec(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    ram_quota_mb: int = Field(100, ge=1)
    replicas: int = Field(1, ge=0, le=3)
    bucket_type: str = "couchbase"


def data_center_from_url(url: str) -> str:
    """`tcp://us-east-1.docker.joyent.com:2376` -> `us-east-1`."""
    if "//" in url:
        url = url.split("//", 1)[1]
    host = url.split("/", 1)[0].split(":", 1)[0]
    return host.split(".", 1)[0]
