from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field, replace
from typing import Mapping

from dotenv import dotenv_values


ENV_FILE = "_env"
ENV_EXAMPLE_FILE = "_env.example"


class MissingEnvFile(Exception):
    """Raised after `_env` was created from the example; the operator must edit and re-run."""


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Topology
    prefix: str = "tb"
    compose_file: str | None = None
    project_dir: str = field(default_factory=os.getcwd)
    compose_command: str = "docker compose"
    docker_host: str | None = None

    # Database admin credentials (from _env / environment)
    couchbase_user: str = "Administrator"
    couchbase_pass: str = "password"
    cb_ram_quota: int = 100

    # Readiness polling
    poll_interval_s: float = 1.0
    db_poll_interval_s: float = 1.3
    # 0 disables the deadline and polls until the process is killed.
    ready_timeout_s: int = 600
    # 0 disables the attempt cap; backoff multiplies the interval after each failure.
    ready_max_attempts: int = 0
    ready_backoff: float = 1.0
    ready_max_interval_s: float = 0.0
    http_timeout_s: float = 5.0

    open_browser: bool = True

    @property
    def mode(self) -> str:
        """`remote` targets the Triton cluster; an explicit compose file means local development."""
        return "local" if self.compose_file else "remote"

    @property
    def credentials(self) -> tuple[str, str]:
        return self.couchbase_user, self.couchbase_pass

    def path(self, relative: str) -> str:
        return os.path.join(self.project_dir, relative)

    def with_overrides(self, **kwargs) -> "Settings":
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides) -> "Settings":
        """Build settings once at startup.

        Environment variables:
          - COUCHBASE_USER / COUCHBASE_PASS / CB_RAM_QUOTA
          - TB_POLL_INTERVAL_S / TB_DB_POLL_INTERVAL_S
          - TB_READY_TIMEOUT_S (0 = wait forever) / TB_HTTP_TIMEOUT_S
          - TB_READY_MAX_ATTEMPTS (0 = no cap) / TB_READY_BACKOFF / TB_READY_MAX_INTERVAL_S
          - TB_COMPOSE_COMMAND / TB_OPEN_BROWSER
          - DOCKER_HOST
        """
        env = dict(os.environ if env is None else env)
        base = cls()
        settings = cls(
            couchbase_user=env.get("COUCHBASE_USER") or base.couchbase_user,
            couchbase_pass=env.get("COUCHBASE_PASS") or base.couchbase_pass,
            cb_ram_quota=_env_int(env, "CB_RAM_QUOTA", base.cb_ram_quota),
            poll_interval_s=_env_float(env, "TB_POLL_INTERVAL_S", base.poll_interval_s),
            db_poll_interval_s=_env_float(env, "TB_DB_POLL_INTERVAL_S", base.db_poll_interval_s),
            ready_timeout_s=_env_int(env, "TB_READY_TIMEOUT_S", base.ready_timeout_s),
            ready_max_attempts=_env_int(env, "TB_READY_MAX_ATTEMPTS", base.ready_max_attempts),
            ready_backoff=_env_float(env, "TB_READY_BACKOFF", base.ready_backoff),
            ready_max_interval_s=_env_float(env, "TB_READY_MAX_INTERVAL_S", base.ready_max_interval_s),
            http_timeout_s=_env_float(env, "TB_HTTP_TIMEOUT_S", base.http_timeout_s),
            compose_command=env.get("TB_COMPOSE_COMMAND") or base.compose_command,
            open_browser=_env_bool(env, "TB_OPEN_BROWSER", base.open_browser),
            docker_host=env.get("DOCKER_HOST") or None,
        )
        return settings.with_overrides(**overrides)


def load_env_file(project_dir: str) -> dict[str, str]:
    """Read the `_env` credentials file, creating it from `_env.example` when missing.

    A freshly created file still holds example credentials, so we stop and ask
    the operator to review it instead of continuing.
    """
    env_path = os.path.join(project_dir, ENV_FILE)
    if os.path.isfile(env_path):
        return {k: v for k, v in dotenv_values(env_path).items() if v is not None}

    example = os.path.join(project_dir, ENV_EXAMPLE_FILE)
    print("Creating an empty configuration file for Couchbase credentials.")
    print(f"Copying {ENV_EXAMPLE_FILE} to {ENV_FILE}")
    print()
    print("Recommended: enter a custom database admin user/pass")
    print(f"in the following {ENV_FILE} file and re-run this script.")
    print()
    if os.path.isfile(example):
        shutil.copyfile(example, env_path)
        with open(example, encoding="utf-8") as fh:
            print(fh.read())
    else:
        with open(env_path, "w", encoding="utf-8") as fh:
            fh.write("COUCHBASE_USER=Administrator\nCOUCHBASE_PASS=password\n")
    raise MissingEnvFile(f"{env_path} was created; edit it and re-run.")
