from __future__ import annotations

import json
import logging
import shutil
import subprocess
from typing import Any, Callable

from pydantic import ValidationError

from .api_models import TritonAccount, TritonInstance, TritonProfile


logger = logging.getLogger(__name__)


class CatalogError(Exception):
    pass


class TritonCatalog:
    """Service catalog backed by the Triton CLI and its CNS records.

    Every call uses `-j` so we parse JSON rather than screen-scrape tables.
    """

    def __init__(self, binary: str = "triton", run: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> None:
        self.binary = binary
        self._run = run

    def installed(self) -> bool:
        return shutil.which(self.binary) is not None

    def _json(self, *args: str) -> Any:
        argv = [self.binary, *args]
        try:
            result = self._run(argv, capture_output=True, text=True, check=False)
        except OSError as e:
            raise CatalogError(f"Cannot run {self.binary}: {e}") from e
        if result.returncode != 0:
            raise CatalogError(f"`{' '.join(argv)}` failed: {(result.stderr or '').strip()}")
        try:
            return json.loads(result.stdout or "null")
        except ValueError as e:
            raise CatalogError(f"`{' '.join(argv)}` returned invalid JSON") from e

    def get_instance(self, name: str) -> TritonInstance | None:
        """Look up an instance by name; None if unknown or the catalog is unreachable."""
        try:
            data = self._json("instance", "get", "-j", name)
            return TritonInstance.model_validate(data)
        except (CatalogError, ValidationError) as e:
            logger.debug("Catalog lookup for %s failed: %s", name, e)
            return None

    def profile(self) -> TritonProfile:
        try:
            return TritonProfile.model_validate(self._json("profile", "get", "-j"))
        except ValidationError as e:
            raise CatalogError(f"Unexpected profile data: {e}") from e

    def account(self) -> TritonAccount:
        try:
            return TritonAccount.model_validate(self._json("account", "get", "-j"))
        except ValidationError as e:
            raise CatalogError(f"Unexpected account data: {e}") from e
