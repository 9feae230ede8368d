"""Pytest configuration for tests.

No sys.path hacks - tests should import from the installed yproj package.
"""

import os
import textwrap
from pathlib import Path

import pytest


@pytest.fixture
def write_doc(tmp_path):
    """Write a dedented YAML document under tmp_path and return its path."""
    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return path
    return _write


class Record:
    """Plain record class used by broker and loader tests."""
    SERIALIZE_FIELDS = ("name", "version", ("tags", "sequence"), ("options", "mapping"))


@pytest.fixture
def record_class():
    # a fresh class per test keeps generation counters and broker caches independent
    return type("Record", (Record,), {})


def pytest_sessionfinish(session, exitstatus):
    """Best-effort cleanup for basetemp on Windows without patching pytest internals."""
    if os.name != "nt":
        return
    basetemp = getattr(session.config.option, "basetemp", None)
    if not basetemp:
        return
    basetemp_path = Path(basetemp)
    if not basetemp_path.exists():
        return
    try:
        import shutil
        shutil.rmtree(basetemp_path)
    except (PermissionError, OSError):
        # If cleanup fails, let it surface as a warning rather than masking errors.
        import warnings
        warnings.warn(f"Could not remove basetemp: {basetemp_path}")
