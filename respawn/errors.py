"""Exception types raised by the launcher."""


class RespawnError(Exception):
    """Base class for launcher errors."""


class ConfigLoadError(RespawnError):
    """The configuration file is missing or unreadable."""


class ManifestLoadError(RespawnError):
    """The dependency manifest is missing or unreadable."""


class BindError(RespawnError):
    """The listener could not bind its port."""

    def __init__(self, port: int, reason: str):
        self.port = port
        self.reason = reason
        super().__init__(f"Could not bind port {port}: {reason}")


class SpawnError(RespawnError):
    """The worker executable failed to start."""


class RegistryLookupError(RespawnError):
    """Latest version of a dependency could not be determined."""


class ReinstallError(RespawnError):
    """Reinstalling a dependency failed."""
