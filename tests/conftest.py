"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import functools
import os

import pytest

from cloudseed import model
from cloudseed.passwords import hash_password


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip image round-trip tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "mutation_timeout: slow test skipped when MUTANT_UNDER_TEST is set"
    )


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use the minimum bcrypt cost so user fixtures hash quickly."""
    monkeypatch.setattr(model, "hash_password", functools.partial(hash_password, rounds=4))
