"""Test doubles for worker processes and the package index."""

from respawn.errors import ReinstallError


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process with a fixed exit code."""

    def __init__(self, pid: int, exit_code: int):
        self.pid = pid
        self.returncode = None
        self._exit_code = exit_code

    async def wait(self) -> int:
        self.returncode = self._exit_code
        return self._exit_code

    def terminate(self):
        self.returncode = -15

    def kill(self):
        self.returncode = -9


class FakeSpawner:
    """Records spawn calls and hands out FakeProcess objects in order."""

    def __init__(self, exit_codes=(0,), error: Exception | None = None, on_spawn=None):
        self.exit_codes = list(exit_codes)
        self.error = error
        self.on_spawn = on_spawn
        self.calls: list[tuple[tuple, dict]] = []

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.on_spawn is not None:
            self.on_spawn()
        if self.error is not None:
            raise self.error
        return FakeProcess(pid=1000 + len(self.calls), exit_code=self.exit_codes.pop(0))


class FakeRegistry:
    """Package index double answering from a name -> version mapping."""

    def __init__(self, versions):
        self.versions = versions
        self.lookups = []

    async def latest_version(self, name):
        self.lookups.append(name)
        version = self.versions[name]
        if isinstance(version, Exception):
            raise version
        return version


class FakeInstaller:
    """Records reinstalls, failing for the given names."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.installed = []

    async def reinstall(self, name, version):
        if name in self.fail:
            raise ReinstallError(f"pip failed for {name}")
        self.installed.append((name, version))
