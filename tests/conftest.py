"""Pytest configuration shared by the chatload tests."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path so tests run without an install
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))


@pytest.fixture
def anyio_backend():
    # The engine is built on asyncio tasks and events.
    return "asyncio"
