"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_wpdockctl_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ``WPDOCKCTL_*`` variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("WPDOCKCTL_"):
            monkeypatch.delenv(key, raising=False)
