from __future__ import annotations

import argparse
import os
import sys

import httpx
from docker.errors import DockerException

from stackboot.catalog import CatalogError
from stackboot.database import ProvisioningError
from stackboot.docker_ops import CommandFailed, InstanceNotFound
from stackboot.preflight import PreconditionError, run_preflight
from stackboot.readiness import DependencyNotReady
from stackboot.runtime import RunState, configure_logging
from stackboot.sequencer import UnknownCommand, build_sequencer
from stackboot.settings import MissingEnvFile, Settings, load_env_file


FATAL = (
    MissingEnvFile,
    PreconditionError,
    DependencyNotReady,
    ProvisioningError,
    CommandFailed,
    InstanceNotFound,
    CatalogError,
    UnknownCommand,
    OSError,
    DockerException,
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="stackboot",
        description="Starts up the entire stack.",
        epilog="Optionally pass a command and parameters to execute just that step, e.g. "
        "`stackboot scale` or `stackboot remove-bucket users`.",
    )
    p.add_argument("-f", dest="compose_file", default=None, help="use this file as the docker-compose config file")
    p.add_argument("-p", dest="prefix", default="tb", help="use this name as the project prefix for docker-compose")
    p.add_argument("-C", dest="project_dir", default=None, help="directory holding _env and templates (default: cwd)")
    p.add_argument("--no-browser", action="store_true", help="do not open dashboards in a browser")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("cmd", nargs="?", help="run only this step")
    p.add_argument("args", nargs=argparse.REMAINDER, help="arguments for the step")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    project_dir = os.path.abspath(args.project_dir or os.getcwd())

    try:
        env_values = load_env_file(project_dir)
        overrides = {"prefix": args.prefix, "compose_file": args.compose_file, "project_dir": project_dir}
        if args.no_browser:
            overrides["open_browser"] = False
        settings = Settings.from_env({**os.environ, **env_values}, **overrides)

        state = RunState()
        with httpx.Client(timeout=settings.http_timeout_s, follow_redirects=False) as client:
            seq = build_sequencer(settings, client, state=state)
            run_preflight(settings, seq.docker_ops)
            if args.cmd:
                seq.run_command(args.cmd, *args.args)
            else:
                seq.run()
    except FATAL as e:
        print(file=sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
