"""Error taxonomy for resolution failures.

Domain and infrastructure code raise these; the service layer converts
them into a failed :class:`~envie.services.result.ServiceResult` carrying
``code`` and the message.  No partial-success values exist anywhere in
the core: an operation either returns its full result or raises one of
these.
"""

from __future__ import annotations

from typing import Any


class EnvieError(Exception):
    """Base class for every error raised by envie."""

    code = "ENVIE_ERROR"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ConfigError(EnvieError):
    """A descriptor or manifest is missing or malformed."""

    code = "CONFIG_ERROR"


class ValidationError(EnvieError):
    """Unresolvable environment token, unknown service/workspace, bad input."""

    code = "VALIDATION_ERROR"


class DependencyError(EnvieError):
    """Unresolved dependency target or cycle in the dependency graph."""

    code = "DEPENDENCY_ERROR"


class ProvisionerError(EnvieError):
    """The external provisioner exited non-zero or could not be invoked."""

    code = "PROVISIONER_ERROR"


class FilesystemError(EnvieError):
    """I/O failure reading descriptors or state."""

    code = "FILESYSTEM_ERROR"
