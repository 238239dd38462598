from __future__ import annotations

import logging
from typing import Any

from docker.errors import DockerException

from .api_models import data_center_from_url
from .catalog import CatalogError, TritonCatalog
from .docker_ops import DockerOps
from .settings import Settings


logger = logging.getLogger(__name__)

TRITON_INSTALL_URL = "https://www.joyent.com/blog/introducing-the-triton-command-line-tool"
TRITON_PROFILES_URL = TRITON_INSTALL_URL + "#using-profiles"
TRITON_CNS_URL = "https://www.joyent.com/blog/introducing-triton-container-name-service"


class PreconditionError(Exception):
    """The local environment cannot run the bootstrap; the message says how to fix it."""


def docker_account(info: dict[str, Any]) -> str:
    """Triton's docker endpoint reports the account as an `SDCAccount` status pair."""
    for key in ("SystemStatus", "DriverStatus"):
        for pair in info.get(key) or []:
            if len(pair) >= 2 and str(pair[0]).strip().rstrip(":") == "SDCAccount":
                return str(pair[1]).strip()
    return ""


def check_triton(settings: Settings, docker_ops: DockerOps, catalog: TritonCatalog) -> list[str]:
    """Verify the Triton CLI targets the same account and data center as docker.

    Returns non-fatal notices.
    """
    if not catalog.installed():
        raise PreconditionError(
            "The Triton CLI tool does not appear to be installed.\n"
            f"Please visit {TRITON_INSTALL_URL} for installation instructions."
        )

    try:
        profile = catalog.profile()
    except CatalogError as e:
        raise PreconditionError(f"Cannot read the Triton profile: {e}") from e

    try:
        docker_user = docker_account(docker_ops.info())
    except DockerException as e:
        raise PreconditionError(f"Cannot reach the docker endpoint: {e}") from e
    docker_dc = data_center_from_url(settings.docker_host or "")
    triton_dc = profile.data_center()

    if docker_user != profile.account or docker_dc != triton_dc:
        raise PreconditionError(
            "The Triton CLI configuration does not match the Docker CLI configuration.\n"
            f"Docker user: {docker_user}\n"
            f"Triton user: {profile.account}\n"
            f"Docker data center: {docker_dc}\n"
            f"Triton data center: {triton_dc}\n"
            "The Triton CLI tool must be configured to use the same user and data center as the Docker CLI.\n"
            f"Please visit {TRITON_PROFILES_URL} for instructions on how to configure and set profiles for Triton."
        )

    notices: list[str] = []
    try:
        cns_enabled = catalog.account().triton_cns_enabled
    except CatalogError as e:
        logger.debug("Could not read Triton account: %s", e)
        cns_enabled = False
    if not cns_enabled:
        notices.append(
            "Triton CNS is not enabled for this account. It is not required, but endpoints "
            "will fall back to raw IP addresses.\n"
            f"See {TRITON_CNS_URL}\n"
            "Enable it with: triton account update triton_cns_enabled=true"
        )
    return notices


def run_preflight(settings: Settings, docker_ops: DockerOps, catalog: TritonCatalog | None = None) -> list[str]:
    if settings.mode == "remote":
        notices = check_triton(settings, docker_ops, catalog or TritonCatalog())
    else:
        if not docker_ops.docker_available():
            raise PreconditionError("Docker is not available. Start Docker Desktop / docker daemon and try again.")
        notices = []
    for n in notices:
        logger.warning(n)
    return notices
