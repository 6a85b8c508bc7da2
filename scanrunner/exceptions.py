"""Custom exceptions."""


class ScanRunnerError(Exception):
    """Base exception for scanrunner."""

    pass


class ConfigError(ScanRunnerError):
    """Invalid command configuration (runtime, auth file, flags)."""

    pass


class NamespaceError(ConfigError):
    """Namespace filter matches no repository."""

    pass


class PluginDiscoveryError(ScanRunnerError):
    """Plugins could not be discovered at all."""

    pass


class PluginExecError(ScanRunnerError):
    """A single plugin invocation failed."""

    pass


class ScanError(ScanRunnerError):
    """The scan machinery could not be started for an image."""

    pass


class RegistryError(ScanRunnerError):
    """Pull, remove or catalog call against a registry failed."""

    pass


class InvalidReferenceError(ScanRunnerError):
    """Image reference could not be parsed."""

    pass


class ReportError(ScanRunnerError):
    """Report was used out of order (written while open, appended after seal)."""

    pass


class RuntimeBackendError(ScanRunnerError):
    """Local image runtime (docker, containerd) call failed."""

    pass
