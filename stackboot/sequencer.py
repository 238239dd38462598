from __future__ import annotations

import inspect
import logging
import webbrowser
from typing import Callable

import httpx

from .database import ADMIN_PORT, COUCHBASE_SERVICE, DatabaseBootstrapper
from .docker_ops import DockerOps
from .health import http_probe
from .kv import CONSUL_PORT, CONSUL_SERVICE, ConfigPublisher
from .readiness import RetryPolicy, wait_until_ready
from .resolver import AddressResolver, Endpoint, make_resolver
from .runtime import RunState
from .settings import Settings


logger = logging.getLogger(__name__)

APP_SERVICE = "touchbase"
APP_TEMPLATE = "config.json.ctmpl"
NGINX_SERVICE = "nginx"
NGINX_TEMPLATE = "nginx/default.ctmpl"
PROMETHEUS_SERVICE = "prometheus"

SCALE_TARGETS = {COUCHBASE_SERVICE: 3, APP_SERVICE: 3, NGINX_SERVICE: 2}


class UnknownCommand(Exception):
    pass


class Sequencer:
    """Brings the stack up in a fixed order.

    Each phase either returns once its dependency is usable or raises; there is
    no phase-level retry and no rollback.
    """

    PHASES = (
        "prep",
        "start_database",
        "show_consoles",
        "setup_database",
        "start_app",
        "start_nginx",
        "start_telemetry",
    )

    def __init__(
        self,
        settings: Settings,
        docker_ops: DockerOps,
        resolver: AddressResolver,
        publisher: ConfigPublisher,
        database: DatabaseBootstrapper,
        client: httpx.Client,
        state: RunState | None = None,
        opener: Callable[[str], object] = webbrowser.open,
    ) -> None:
        self.settings = settings
        self.docker_ops = docker_ops
        self.resolver = resolver
        self.publisher = publisher
        self.database = database
        self.client = client
        self.state = state or RunState()
        self.opener = opener

    def run(self) -> RunState:
        for phase in self.PHASES:
            self.state.enter(phase)
            getattr(self, phase)()
            self.state.finish(phase)
        print()
        print("Touchbase cluster is launched!")
        hint = f"-f {self.settings.compose_file} " if self.settings.compose_file else ""
        print(f"Try scaling it up by running: stackboot {hint}scale")
        return self.state

    # -- phases -----------------------------------------------------------

    def prep(self) -> None:
        print("Starting example application")
        print(f"project prefix:      {self.settings.prefix}")
        print(f"docker-compose file: {self.settings.compose_file or ''}")
        print()
        print("Pulling latest container images")
        self.docker_ops.pull()

    def start_database(self) -> None:
        print()
        print("Starting Couchbase")
        self.docker_ops.up(COUCHBASE_SERVICE, no_recreate=True)

    def show_consoles(self) -> None:
        consul = self.resolver.resolve(CONSUL_SERVICE, CONSUL_PORT)
        print()
        print("Consul is now running")
        print(f"Dashboard: {consul}")
        self._open(consul.url("/ui/"))

        cb = self.resolver.resolve(COUCHBASE_SERVICE, ADMIN_PORT)
        print()
        print("Couchbase cluster running and bootstrapped")
        print(f"Dashboard: {cb}")
        self._open(cb.url("/index.html#sec=servers"))

    def setup_database(self) -> None:
        report = self.database.bootstrap()
        self.state.log_event(
            "INFO",
            f"Buckets created={report.created_buckets} skipped={report.skipped_buckets}; "
            f"indexes created={report.created_indexes} skipped={report.skipped_indexes}",
            service=COUCHBASE_SERVICE,
        )

    def start_app(self) -> Endpoint:
        self.write_template(APP_SERVICE, self.settings.path(APP_TEMPLATE))
        print()
        self.docker_ops.up(APP_SERVICE)
        return self.resolver.resolve(APP_SERVICE, 3000)

    def start_nginx(self) -> Endpoint:
        self.write_template(NGINX_SERVICE, self.settings.path(NGINX_TEMPLATE))
        print()
        self.docker_ops.up(NGINX_SERVICE)
        nginx = self.resolver.resolve(NGINX_SERVICE, 80)
        print("Waiting for Nginx to pick up initial configuration.")
        print(f"Trying {nginx.url()} ...")
        self._wait(NGINX_SERVICE, nginx.url())
        print()
        print("Opening Touchbase app at")
        print(nginx.url())
        self._open(nginx.url())
        return nginx

    def start_telemetry(self) -> Endpoint:
        self.docker_ops.up(PROMETHEUS_SERVICE)
        prom = self.resolver.resolve(PROMETHEUS_SERVICE, 9090)
        print("Waiting for Prometheus...")
        self._wait(PROMETHEUS_SERVICE, prom.url("/metrics"))
        print()
        print("Opening Prometheus expression browser at")
        print(prom.url("/graph"))
        self._open(prom.url("/graph"))
        return prom

    # -- operator commands ------------------------------------------------

    def write_template(self, service: str, template_path: str) -> int:
        attempts = self.publisher.publish(service, template_path)
        self.state.log_event("INFO", f"Template {template_path} published", service=service)
        return attempts

    def scale(self) -> None:
        print()
        print("Scaling cluster to 3 Couchbase nodes, 3 app nodes, 2 Nginx nodes.")
        self.docker_ops.scale(**SCALE_TARGETS)

    def remove_bucket(self, name: str) -> None:
        self.database.remove_bucket(name)

    def run_command(self, name: str, *args: str) -> object:
        """Run one named step on its own, outside the full bootstrap order."""
        commands: dict[str, Callable[..., object]] = {
            "up": self.run,
            "scale": self.scale,
            "remove-bucket": self.remove_bucket,
            "write-template": self.write_template,
        }
        for phase in self.PHASES:
            commands[phase.replace("_", "-")] = getattr(self, phase)

        fn = commands.get(name.replace("_", "-"))
        if fn is None:
            raise UnknownCommand(f"Unknown command '{name}'. Available: {', '.join(sorted(commands))}")
        try:
            inspect.signature(fn).bind(*args)
        except TypeError as e:
            raise UnknownCommand(f"Bad arguments for '{name}': {e}") from e
        return fn(*args)

    # -- helpers ----------------------------------------------------------

    def _wait(self, name: str, url: str) -> int:
        return wait_until_ready(name, http_probe(self.client, url), RetryPolicy.from_settings(self.settings))

    def _open(self, url: str) -> None:
        if not self.settings.open_browser:
            return
        try:
            self.opener(url)
        except webbrowser.Error as e:
            logger.debug("Could not open %s: %s", url, e)


def build_sequencer(settings: Settings, client: httpx.Client, state: RunState | None = None) -> Sequencer:
    """Wire the default collaborators; the resolver variant is picked here, once."""
    state = state or RunState()
    docker_ops = DockerOps(settings)
    resolver = make_resolver(settings, docker_ops)
    publisher = ConfigPublisher(client, resolver, settings)
    database = DatabaseBootstrapper(docker_ops, client, resolver, settings, state=state)
    return Sequencer(settings, docker_ops, resolver, publisher, database, client, state=state)
