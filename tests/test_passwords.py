"""Tests for password hashing helpers."""
from __future__ import annotations

import pytest

from cloudseed import passwords
from cloudseed.passwords import (
    PasswordHashError,
    hash_password,
    looks_hashed,
    verify_password,
)


def test_hash_password_produces_crypt_style_hash() -> None:
    """Hashes carry the ``$`` crypt prefix and verify against the input."""
    hashed = hash_password("s3cret", rounds=4)

    assert hashed.startswith("$2")
    assert looks_hashed(hashed)
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)


def test_hash_password_is_salted() -> None:
    """The same plaintext hashes differently each time."""
    assert hash_password("same", rounds=4) != hash_password("same", rounds=4)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("$6$salt$digest", True), ("plaintext", False), ("", False)],
)
def test_looks_hashed(value: str, expected: bool) -> None:
    """Only values with the crypt prefix count as hashed."""
    assert looks_hashed(value) is expected


def test_hash_failure_raises_typed_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """Backend failures surface as PasswordHashError."""

    def broken_hashpw(password: bytes, salt: bytes) -> bytes:
        raise ValueError("backend unavailable")

    monkeypatch.setattr(passwords.bcrypt, "hashpw", broken_hashpw)

    with pytest.raises(PasswordHashError, match="backend unavailable"):
        hash_password("s3cret", rounds=4)


def test_verify_password_rejects_malformed_hash() -> None:
    """Malformed hashes never verify."""
    assert verify_password("s3cret", "not-a-hash") is False
