"""Map a logical service name to a reachable network address.

Resolution is a best-effort lookup: it never raises, degrading to the local
machine's address when nothing better is known. Results are not cached since
instances can be recreated with new addresses between phases.
"""
from __future__ import annotations

import logging
import socket
import subprocess
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlparse

from docker.errors import DockerException

from .catalog import TritonCatalog
from .docker_ops import DockerOps, InstanceNotFound
from .settings import Settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: str

    def is_valid(self) -> bool:
        return bool(self.host) and bool(self.port)

    def url(self, path: str = "", scheme: str = "http") -> str:
        if path and not path.startswith("/"):
            path = "/" + path
        return f"{scheme}://{self}{path}"

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host and not self.host.startswith("[") else self.host
        return f"{host}:{self.port}"


def local_address() -> str:
    """Roughly `hostname -i`."""
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"


class AddressResolver:
    def __init__(self, settings: Settings, docker_ops: DockerOps) -> None:
        self.settings = settings
        self.docker_ops = docker_ops

    def resolve(self, service: str, port: int | str) -> Endpoint:
        host = self._host(service) or local_address()
        resolved_port = self._port(service, port) or str(port)
        ep = Endpoint(host=host, port=str(resolved_port))
        logger.debug("Resolved %s:%s -> %s", service, port, ep)
        return ep

    def _host(self, service: str) -> str | None:
        raise NotImplementedError

    def _port(self, service: str, port: int | str) -> str | None:
        return str(port)

    def _instance_ip(self, service: str) -> str | None:
        try:
            return self.docker_ops.instance_ip(service)
        except (InstanceNotFound, DockerException) as e:
            logger.debug("No runtime address for %s: %s", service, e)
            return None


class RemoteClusterResolver(AddressResolver):
    """Triton: prefer the CNS service name, then the instance IP; ports are reachable as declared."""

    def __init__(self, settings: Settings, docker_ops: DockerOps, catalog: TritonCatalog) -> None:
        super().__init__(settings, docker_ops)
        self.catalog = catalog

    def _host(self, service: str) -> str | None:
        name = self.docker_ops.instance_names(service)[0]
        inst = self.catalog.get_instance(name)
        if inst is not None:
            dns = inst.svc_dns_name()
            if dns:
                return dns
            ip = inst.fallback_ip()
            if ip:
                return ip
        return self._instance_ip(service)


class LocalDockerResolver(AddressResolver):
    """Local development: the docker VM's address plus the dynamically published host port."""

    def __init__(
        self,
        settings: Settings,
        docker_ops: DockerOps,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        super().__init__(settings, docker_ops)
        self._run = run

    def machine_ip(self) -> str | None:
        try:
            result = self._run(["docker-machine", "ip", "default"], capture_output=True, text=True, check=False)
        except OSError:
            result = None
        if result is not None and result.returncode == 0 and (result.stdout or "").strip():
            return result.stdout.strip()

        docker_host = self.settings.docker_host or ""
        if docker_host.startswith("tcp://"):
            return urlparse(docker_host).hostname
        return None

    def _host(self, service: str) -> str | None:
        return self.machine_ip()

    def _port(self, service: str, port: int | str) -> str | None:
        try:
            return self.docker_ops.published_port(service, int(port))
        except (InstanceNotFound, DockerException, ValueError) as e:
            logger.debug("No published port for %s:%s: %s", service, port, e)
            return None


def make_resolver(settings: Settings, docker_ops: DockerOps, catalog: TritonCatalog | None = None) -> AddressResolver:
    if settings.mode == "local":
        return LocalDockerResolver(settings, docker_ops)
    return RemoteClusterResolver(settings, docker_ops, catalog or TritonCatalog())
