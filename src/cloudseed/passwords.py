"""Password hashing for ``/etc/shadow`` compatible user credentials."""
from __future__ import annotations

import bcrypt

HASH_MARKER = "$"
DEFAULT_ROUNDS = 10


class PasswordHashError(RuntimeError):
    """Raised when a plaintext password cannot be hashed."""


def looks_hashed(password: str) -> bool:
    """Return ``True`` when *password* already carries a crypt(3) prefix."""
    return password.startswith(HASH_MARKER)


def hash_password(password: str, *, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a bcrypt hash of *password* suitable for the shadow file."""
    try:
        digest = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    except (TypeError, ValueError) as exc:
        raise PasswordHashError(f"Failed to hash password: {exc}") from exc
    return digest.decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    """Return ``True`` when *password* matches the bcrypt *hashed* value."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("ascii"))
    except ValueError:
        return False


__all__ = [
    "DEFAULT_ROUNDS",
    "HASH_MARKER",
    "PasswordHashError",
    "hash_password",
    "looks_hashed",
    "verify_password",
]
