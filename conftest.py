"""Repo-wide test fixtures.

Snapshots and restores CAFETERIA_* environment variables between tests
so a test that exports settings never leaks them into the next one.
"""

from __future__ import annotations

import os

import pytest

_SETTINGS_ENV_VARS = [
    "CAFETERIA_ENV",
    "CAFETERIA_BIND",
    "CAFETERIA_PORT",
    "CAFETERIA_ALLOW_NONLOCAL",
    "CAFETERIA_ENABLE_DOCS",
    "CAFETERIA_DATA_DIR",
    "CAFETERIA_PERSIST",
    "CAFETERIA_COMPANIES_PATH",
    "CAFETERIA_LOG_FORMAT",
    "CAFETERIA_TIMEZONE",
    "CAFETERIA_INCLUDE_ANONYMOUS",
    "CAFETERIA_CACHE_SIZE",
    "CAFETERIA_DISPATCH_URL",
    "CAFETERIA_DISPATCH_TIMEOUT",
]


@pytest.fixture(autouse=True)
def _restore_env():
    """Snapshot settings env vars before each test and restore after."""
    snapshot = {}
    for var in _SETTINGS_ENV_VARS:
        val = os.environ.get(var)
        if val is not None:
            snapshot[var] = val

    yield

    # Restore: remove any that were added, reset any that changed
    for var in _SETTINGS_ENV_VARS:
        if var in snapshot:
            os.environ[var] = snapshot[var]
        else:
            os.environ.pop(var, None)
