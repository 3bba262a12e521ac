"""Error taxonomy for enginepack.

Every per-target failure is one of these classes. The pipeline uses the
class to decide how a target ends:

- PrerequisiteMissingError: target is skipped, not failed
- ConfigError: malformed or missing manifest/config, target fails
- TransientIOError: retried by the caller, fatal once retries run out
- ExternalToolError: build/upgrade tool exited non-zero, target fails
- ResourceStateError: the shared toolchain slot could not be restored
"""


class EnginePackError(Exception):
    """Base exception for all enginepack errors."""

    pass


class PrerequisiteMissingError(EnginePackError):
    """Raised when an engine install or tool required by a target is absent."""

    pass


class ConfigError(EnginePackError):
    """Raised for malformed or missing configuration and manifest files."""

    pass


class TransientIOError(EnginePackError):
    """Raised when a file is temporarily locked by another process."""

    pass


class ExternalToolError(EnginePackError):
    """Raised when an external tool invocation fails."""

    pass


class ResourceStateError(EnginePackError):
    """Raised when a shared external resource could not be put back."""

    pass
