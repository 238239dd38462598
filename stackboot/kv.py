from __future__ import annotations

import logging

import httpx

from .health import put_probe
from .readiness import RetryPolicy, wait_until_ready
from .resolver import AddressResolver
from .settings import Settings


logger = logging.getLogger(__name__)

CONSUL_SERVICE = "consul"
CONSUL_PORT = 8500


def key_for(service: str) -> str:
    return f"{service}/template"


class ConfigPublisher:
    """Writes consul-template sources into Consul's KV store.

    Services render their config from `<service>/template` once at startup, so a
    publish must be confirmed before the consuming service is started.
    """

    def __init__(self, client: httpx.Client, resolver: AddressResolver, settings: Settings) -> None:
        self.client = client
        self.resolver = resolver
        self.settings = settings

    def publish(self, service: str, template_path: str) -> int:
        """Write the template's raw bytes to `<service>/template`; returns attempts taken."""
        with open(template_path, "rb") as fh:
            body = fh.read()

        consul = self.resolver.resolve(CONSUL_SERVICE, CONSUL_PORT)
        key = key_for(service)
        url = consul.url(f"/v1/kv/{key}")
        print(f"Writing {template_path} to key {key} in Consul")

        # Consul answers 500 until its leader election completes on a fresh boot.
        attempts = wait_until_ready(
            f"consul kv {key}",
            put_probe(self.client, url, body),
            RetryPolicy.from_settings(self.settings),
        )
        logger.info("Published %s (%d bytes) after %d attempt(s)", key, len(body), attempts)
        return attempts
