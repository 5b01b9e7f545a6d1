"""
Dependency update pass.

Runs once, a fixed delay after startup. For every dependency declared in the
manifest that is not excluded, the latest release is looked up on the package
index; if it differs from the declared version the manifest entry is
rewritten to "^<latest>", the manifest is saved, and the dependency is
reinstalled. Each dependency is handled independently so one failure does
not stop the rest of the pass.
"""

import asyncio
import json
import logging
import re
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import httpx
from packaging.version import InvalidVersion, Version

from .config import SupervisorConfig
from .errors import ManifestLoadError, RegistryLookupError, ReinstallError

logger = logging.getLogger(__name__)

_RANGE_PREFIX = re.compile(r"^[\s^~=<>!v]+")


def bare_version(declared: str) -> str:
    """Strip a leading caret or range operator from a version constraint."""
    return _RANGE_PREFIX.sub("", declared).strip()


class Manifest:
    """JSON dependency manifest, read once and saved after each update."""

    def __init__(self, path: Path, document: dict):
        self.path = Path(path)
        self.document = document

    @classmethod
    def load(cls, path: str | Path) -> "Manifest":
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            raise ManifestLoadError(f"Manifest not found: {path}")
        except (OSError, json.JSONDecodeError) as e:
            raise ManifestLoadError(f"Error loading {path}: {e}")

        if not isinstance(document, dict):
            raise ManifestLoadError(f"Manifest {path} must contain a JSON object")
        if not isinstance(document.setdefault("dependencies", {}), dict):
            raise ManifestLoadError(f"Manifest {path} \"dependencies\" must be a JSON object")
        return cls(path, document)

    @property
    def dependencies(self) -> dict[str, str]:
        return self.document["dependencies"]

    def save(self):
        self.path.write_text(json.dumps(self.document, indent=2), encoding="utf-8")


class PyPIRegistry:
    """Looks up the latest released version of a package on PyPI."""

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def latest_version(self, name: str) -> str:
        url = f"{self.base_url}/{name}/json"
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=30.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=30.0)
            response.raise_for_status()
            version = response.json()["info"]["version"]
        except httpx.HTTPError as e:
            raise RegistryLookupError(f"Could not fetch {url}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise RegistryLookupError(f"Malformed index response for {name}: {e}") from e

        if not version:
            raise RegistryLookupError(f"No released version found for {name}")
        return version


class PipInstaller:
    """Reinstalls a single dependency with pip."""

    def __init__(self, python: str = sys.executable):
        self.python = python

    def command(self, name: str, version: str) -> list[str]:
        return [self.python, "-m", "pip", "install", "--upgrade", f"{name}=={version}"]

    async def reinstall(self, name: str, version: str):
        cmd = self.command(name, version)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ReinstallError(f"Could not run {' '.join(cmd)}: {e}") from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise ReinstallError(
                f"pip install {name}=={version} failed with exit code "
                f"{process.returncode}: {stderr.decode('utf-8', errors='replace').strip()}"
            )
        logger.debug(f"pip install output: {stdout.decode('utf-8', errors='replace')}")


class UpdateStatus(Enum):
    EXCLUDED = "excluded"
    CURRENT = "current"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class UpdateResult:
    name: str
    declared: str
    latest: str | None
    status: UpdateStatus
    bare: str | None = None
    error: str | None = None


class DependencyUpdater:
    """One-shot, delayed dependency update pass."""

    def __init__(
        self,
        config: SupervisorConfig,
        manifest: Manifest | None,
        registry: PyPIRegistry | None = None,
        installer: PipInstaller | None = None,
    ):
        self.config = config
        self.manifest = manifest
        self.registry = registry or PyPIRegistry(config.pypi_url)
        self.installer = installer or PipInstaller()
        self._task: asyncio.Task | None = None

    def schedule(self) -> asyncio.Task:
        """Run the update pass once after config.update_delay seconds."""
        if self._task is None:
            self._task = asyncio.create_task(self._run_later(self.config.update_delay))
        return self._task

    async def _run_later(self, delay: float) -> list[UpdateResult]:
        await asyncio.sleep(delay)
        return await self.run_once()

    async def run_once(self) -> list[UpdateResult]:
        """Check every declared dependency in manifest order."""
        if not self.config.update_enabled or self.manifest is None:
            logger.info("Package updates are not enabled in the config file")
            return []

        results = []
        for name, declared in list(self.manifest.dependencies.items()):
            results.append(await self.update_dependency(name, declared))

        updated = sum(1 for r in results if r.status == UpdateStatus.UPDATED)
        logger.info(f"Dependency check finished: {updated} of {len(results)} updated")
        return results

    async def update_dependency(self, name: str, declared: str) -> UpdateResult:
        if name in self.config.excluded:
            logger.debug(f"Skipping excluded dependency {name}")
            return UpdateResult(name, declared, None, UpdateStatus.EXCLUDED)

        if not isinstance(declared, str):
            error = f"version constraint {declared!r} is not a string"
            logger.error(f"Error checking and updating {name}: {error}")
            return UpdateResult(name, declared, None, UpdateStatus.FAILED, error=error)

        bare = bare_version(declared)
        latest = None
        try:
            latest = await self.registry.latest_version(name)
            if Version(bare) == Version(latest):
                return UpdateResult(name, declared, latest, UpdateStatus.CURRENT, bare=bare)

            logger.warning(
                f"There is a newer version (^{latest}) available for {name}. "
                "Updating to the latest version..."
            )
            self.manifest.dependencies[name] = f"^{latest}"
            self.manifest.save()
            logger.info(f"{name} updated to ^{latest}")

            await self.installer.reinstall(name, latest)
            return UpdateResult(name, declared, latest, UpdateStatus.UPDATED, bare=bare)

        except (RegistryLookupError, ReinstallError, InvalidVersion, TypeError, OSError) as e:
            logger.error(f"Error checking and updating {name}: {e}")
            return UpdateResult(
                name, declared, latest, UpdateStatus.FAILED, bare=bare, error=str(e)
            )
