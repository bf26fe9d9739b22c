"""Tests for mapping errors to CLI exit codes."""
from __future__ import annotations

import pytest

from cloudseed.config import ConfigError
from cloudseed.exit_codes import ExitCode, exit_code_for
from cloudseed.image import ImageAssemblyError, IsoWriterError
from cloudseed.manifest import ManifestError
from cloudseed.model import DataSourceMismatchError, EntropyUnavailableError
from cloudseed.passwords import PasswordHashError


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConfigError("bad key"), ExitCode.VALIDATION),
        (ManifestError("bad manifest"), ExitCode.VALIDATION),
        (DataSourceMismatchError("ec2 metadata on nocloud"), ExitCode.VALIDATION),
        (IsoWriterError("not an image"), ExitCode.VALIDATION),
        (PasswordHashError("bcrypt failed"), ExitCode.ENVIRONMENT),
        (EntropyUnavailableError("no randomness"), ExitCode.ENVIRONMENT),
        (PermissionError("read-only"), ExitCode.ENVIRONMENT),
        (ImageAssemblyError("finalize", "writer exploded"), ExitCode.PROVIDER),
    ],
)
def test_exit_code_for_known_errors(error: BaseException, expected: ExitCode) -> None:
    """Each error family maps to its documented exit code."""
    assert exit_code_for(error) is expected


def test_exit_code_for_unknown_error() -> None:
    """Unregistered errors are a programming mistake."""
    with pytest.raises(TypeError, match="KeyError"):
        exit_code_for(KeyError("x"))
