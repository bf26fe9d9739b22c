"""Exit codes reported by the ``cloudseed`` CLI and the errors behind them."""
from __future__ import annotations

from enum import IntEnum

from .config import ConfigError
from .image import ImageAssemblyError, IsoWriterError
from .manifest import ManifestError
from .model import DataSourceMismatchError, EntropyUnavailableError
from .passwords import PasswordHashError


class ExitCode(IntEnum):
    """Process exit status for each class of seed build failure."""

    OK = 0
    # Bad config file, manifest, or image handed to ``inspect``.
    VALIDATION = 2
    # The host could not hash, draw entropy or write the image.
    ENVIRONMENT = 3
    # The ISO writer refused the rendered documents.
    PROVIDER = 4


_ERROR_CODES: tuple[tuple[type[BaseException], ExitCode], ...] = (
    (ConfigError, ExitCode.VALIDATION),
    (ManifestError, ExitCode.VALIDATION),
    (DataSourceMismatchError, ExitCode.VALIDATION),
    (IsoWriterError, ExitCode.VALIDATION),
    (PasswordHashError, ExitCode.ENVIRONMENT),
    (EntropyUnavailableError, ExitCode.ENVIRONMENT),
    (OSError, ExitCode.ENVIRONMENT),
    (ImageAssemblyError, ExitCode.PROVIDER),
)


def exit_code_for(exc: BaseException) -> ExitCode:
    """Return the exit code the CLI reports when *exc* stops a command."""
    for error_type, code in _ERROR_CODES:
        if isinstance(exc, error_type):
            return code
    raise TypeError(f"No exit code registered for {type(exc).__name__}.")


__all__ = ["ExitCode", "exit_code_for"]
