"""Pytest configuration and shared fixtures for dsense tests.

This module provides auto-use fixtures that keep tests independent of the
caller's DSENSE_* environment.
"""

import os

import pytest


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Auto-use fixture that clears every DSENSE_* environment variable."""
    for key in list(os.environ):
        if key.startswith('DSENSE_'):
            monkeypatch.delenv(key, raising=False)
    yield
