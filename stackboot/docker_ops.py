from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Any, Callable

import docker
from docker.errors import DockerException, NotFound

from .settings import Settings


logger = logging.getLogger(__name__)

PROJECT_LABEL = "com.docker.compose.project"
SERVICE_LABEL = "com.docker.compose.service"
NUMBER_LABEL = "com.docker.compose.container-number"


class CommandFailed(Exception):
    def __init__(self, argv: list[str], returncode: int, detail: str = "") -> None:
        self.argv = argv
        self.returncode = returncode
        self.detail = detail
        msg = f"`{' '.join(argv)}` exited with status {returncode}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class InstanceNotFound(Exception):
    pass


class DockerOps:
    """Container runtime client.

    Service-group operations (pull/up/scale) go through the compose CLI.
    Per-instance lookups (names, ports, IPs, exec) use the docker SDK.
    """

    def __init__(
        self,
        settings: Settings,
        client: Any | None = None,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self.settings = settings
        self._docker = client
        self._run = run

    def _client(self) -> docker.DockerClient:
        if self._docker is None:
            self._docker = docker.from_env()
        return self._docker

    def docker_available(self) -> bool:
        try:
            self._client().ping()
            return True
        except DockerException:
            return False

    def info(self) -> dict[str, Any]:
        return self._client().info()

    # -- service groups ---------------------------------------------------

    def compose_argv(self, *args: str) -> list[str]:
        argv = shlex.split(self.settings.compose_command) + ["-p", self.settings.prefix]
        if self.settings.compose_file:
            argv += ["-f", self.settings.compose_file]
        return argv + list(args)

    def _compose(self, *args: str) -> None:
        argv = self.compose_argv(*args)
        logger.debug("Running %s", " ".join(argv))
        # Output is passed through so the operator sees pull/up progress.
        result = self._run(argv, cwd=self.settings.project_dir, check=False)
        if result.returncode != 0:
            raise CommandFailed(argv, result.returncode)

    def pull(self) -> None:
        self._compose("pull")

    def up(self, service: str, no_recreate: bool = False) -> None:
        args = ["up", "-d"]
        if no_recreate:
            args.append("--no-recreate")
        self._compose(*args, service)

    def scale(self, **counts: int) -> None:
        for service, count in counts.items():
            if count < 0:
                raise ValueError(f"Replica count for {service} must be >= 0.")
            self._compose("up", "-d", "--no-recreate", "--scale", f"{service}={int(count)}", service)

    # -- instances --------------------------------------------------------

    def instance_names(self, service: str, ordinal: int = 1) -> list[str]:
        prefix = self.settings.prefix
        # compose v1 used underscores, v2 uses hyphens
        return [f"{prefix}_{service}_{ordinal}", f"{prefix}-{service}-{ordinal}"]

    def find_instance(self, service: str, ordinal: int = 1):
        c = self._client()
        for name in self.instance_names(service, ordinal):
            try:
                return c.containers.get(name)
            except NotFound:
                continue

        filters = {
            "label": [
                f"{PROJECT_LABEL}={self.settings.prefix}",
                f"{SERVICE_LABEL}={service}",
                f"{NUMBER_LABEL}={ordinal}",
            ]
        }
        found = c.containers.list(all=True, filters=filters)
        if not found:
            raise InstanceNotFound(f"No container for {service} #{ordinal} in project '{self.settings.prefix}'.")
        return found[0]

    def published_port(self, service: str, port: int, proto: str = "tcp") -> str | None:
        """Host port mapped to a container port, e.g. 3000/tcp -> "32768"."""
        cont = self.find_instance(service)
        ports = (cont.attrs.get("NetworkSettings") or {}).get("Ports") or {}
        bindings = ports.get(f"{int(port)}/{proto}") or []
        for b in bindings:
            host_port = (b or {}).get("HostPort")
            if host_port:
                return str(host_port)
        return None

    def instance_ip(self, service: str) -> str | None:
        cont = self.find_instance(service)
        net = cont.attrs.get("NetworkSettings") or {}
        if net.get("IPAddress"):
            return net["IPAddress"]
        for attached in (net.get("Networks") or {}).values():
            if (attached or {}).get("IPAddress"):
                return attached["IPAddress"]
        return None

    def exec_in(self, service: str, argv: list[str]) -> tuple[int, str]:
        """Run a command inside the service's first instance; returns (exit_code, output)."""
        cont = self.find_instance(service)
        result = cont.exec_run(argv)
        output = result.output or b""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        return int(result.exit_code or 0), output
