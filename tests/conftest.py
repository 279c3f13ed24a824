import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """Make `src/` importable in tests without requiring installation."""
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def fresh_ids() -> None:
    """Every test starts from id 1 so expected ids are stable."""
    from graphopt.ir import reset_id_counter

    reset_id_counter()
